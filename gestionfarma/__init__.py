"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect
from werkzeug.exceptions import HTTPException
from gestionfarma.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize CSRF protection
    CSRFProtect(app)

    from flask_wtf.csrf import CSRFError

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({
            'status': 'error',
            'category': 'warning',
            'message': 'La sesión ha expirado. Recarga la página.'
        }), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache for header stats
    from gestionfarma.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from gestionfarma.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Load user and tenant context before each request
    from gestionfarma.middleware import load_user_and_tenant

    @app.before_request
    def before_request_handler():
        """Load user and tenant context for each request."""
        load_user_and_tenant()

    # Error Handlers
    from gestionfarma.exceptions import PosError

    @app.errorhandler(PosError)
    def handle_pos_error(error):
        """Handle application exceptions as JSON toasts."""
        if error.status_code >= 500:
            app.logger.error(f"PosError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"PosError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'status': 'error', 'category': 'error', 'message': error.name}), error.code

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception on {request.path}: {error}", exc_info=True)
        return jsonify({'status': 'error', 'category': 'error', 'message': 'Internal Server Error'}), 500

    # Sale completed listeners
    from gestionfarma.events import sale_completed
    from gestionfarma.blueprints.metrics import record_sale_completed
    from gestionfarma.services.stats_service import on_sale_completed

    sale_completed.connect(on_sale_completed, weak=False)
    sale_completed.connect(record_sale_completed, weak=False)

    # Register blueprints
    from gestionfarma.blueprints.pos import pos_bp
    from gestionfarma.blueprints.caja import caja_bp
    from gestionfarma.blueprints.commissions import commissions_bp
    from gestionfarma.blueprints.clients import clients_bp
    from gestionfarma.blueprints.notifications import notifications_bp
    from gestionfarma.blueprints.metrics import metrics_bp

    app.register_blueprint(pos_bp)
    app.register_blueprint(caja_bp)
    app.register_blueprint(commissions_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from gestionfarma.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
