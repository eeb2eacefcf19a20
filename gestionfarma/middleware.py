"""Middleware for authentication and tenant context."""
from functools import wraps
from flask import session, g, current_app
from gestionfarma.context import TenantContext
from gestionfarma.database import get_session
from gestionfarma.exceptions import UnauthorizedError, ValidationError
from gestionfarma.models import AppUser


def load_user_and_tenant():
    """
    Load current user and tenant context into g (Flask's per-request global).

    Called before each request. Sets g.user and g.ctx; the site/company
    pair comes from the session and falls back on the user's defaults.
    """
    g.user = None
    g.ctx = TenantContext(user_id=None, username='', site_id=None, company_id=None)

    try:
        user_id = session.get('user_id')
        if not user_id:
            return

        db_session = get_session()
        if not db_session:
            return

        user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
        if not user:
            # Stale session: user removed or deactivated
            session.pop('user_id', None)
            return

        g.user = user
        g.ctx = TenantContext(
            user_id=user.id,
            username=user.full_name or user.email,
            site_id=session.get('site_id') or user.site_id,
            company_id=session.get('company_id') or user.company_id,
        )
    except Exception as e:
        # Avoid crashing the whole app if context loading fails
        current_app.logger.error(f"Error in load_user_and_tenant: {e}")


def require_login(f):
    """
    Decorator: Require user to be logged in.

    Raises UnauthorizedError (401 JSON) if not authenticated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise UnauthorizedError()
        return f(*args, **kwargs)
    return decorated_function


def require_tenant(f):
    """
    Decorator: Require site and company to be selected.

    Must be used AFTER require_login.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        ctx = g.get('ctx')
        if ctx is None or not ctx.has_tenant:
            raise ValidationError('Debes seleccionar una sede primero.')
        return f(*args, **kwargs)
    return decorated_function
