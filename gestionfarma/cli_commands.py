"""
Flask CLI commands for maintenance jobs.

Commands:
- flask init-db: Create the database tables
- flask check-expirations: Expired / expiring product alerts for every site
- flask backfill-commissions: Regenerate missing commission records
"""

import click
from gestionfarma.context import TenantContext
from gestionfarma.database import create_all, get_session
from gestionfarma.models import Site
from gestionfarma.services.commission_service import backfill_commissions
from gestionfarma.services.notification_service import check_product_expirations
from gestionfarma.utils.number_format import parse_date


def _site_contexts(db_session, site_id=None):
    """A system TenantContext per site (all sites unless one is given)."""
    query = db_session.query(Site)
    if site_id:
        query = query.filter(Site.id == site_id)
    for site in query.order_by(Site.id).all():
        yield TenantContext(user_id=None, username='system', site_id=site.id, company_id=site.company_id)


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        create_all()
        click.echo(click.style('✅ Tablas creadas.', fg='green'))

    @app.cli.command('check-expirations')
    @click.option('--days', default=None, type=int, help='Alert window in days (EXPIRING_DAYS by default)')
    @click.option('--site-id', default=None, type=int, help='Only this site')
    def check_expirations(days, site_id):
        """Create expired / expiring product notifications."""
        db_session = get_session()
        total = 0
        for ctx in _site_contexts(db_session, site_id):
            created = check_product_expirations(db_session, ctx, days=days)
            total += created
            if created:
                click.echo(f'   Sede {ctx.site_id}: {created} alertas')
        click.echo(click.style(f'✅ {total} notificaciones de vencimiento creadas.', fg='green'))

    @app.cli.command('backfill-commissions')
    @click.option('--since', default=None, help='Only sales completed from this date (YYYY-MM-DD)')
    @click.option('--site-id', default=None, type=int, help='Only this site')
    def backfill(since, site_id):
        """Create commission records missing for completed sales."""
        since_date = parse_date(since, 'since') if since else None
        db_session = get_session()
        total = 0
        for ctx in _site_contexts(db_session, site_id):
            try:
                created = backfill_commissions(db_session, ctx, since=since_date)
            except Exception as e:
                db_session.rollback()
                click.echo(click.style(f'❌ Sede {ctx.site_id}: {e}', fg='red'))
                continue
            total += created
        click.echo(click.style(f'✅ {total} comisiones generadas.', fg='green'))
