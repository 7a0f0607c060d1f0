"""
Flask Application Factory
Initializes and configures the kiosk application
"""

import os
from flask import Flask, jsonify
from config import config
from kiosk.models import db
from kiosk.services.container import KioskServices, EXTENSION_KEY


def create_app(config_name='default', client=None, hydrate=True, brightness_controller=None):
    """
    Application factory pattern
    Creates and configures Flask application

    Args:
        config_name: key of the `config` mapping
        client: backend client to use instead of one built from config
        hydrate: load the local close store before serving
        brightness_controller: device display integration used by the dim task
    """
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config[config_name])

    # Validate secret key in production
    if config_name == 'production':
        if not app.config.get('SECRET_KEY') or app.config['SECRET_KEY'] == 'dev-secret-key-change-in-production':
            raise ValueError("Production requires a secure SECRET_KEY. Set it via environment variable.")

    # Initialize extensions
    db.init_app(app)

    # Initialize Sentry if configured
    if app.config.get('SENTRY_DSN'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=app.config.get('SENTRY_TRACES_SAMPLE_RATE', 0.2),
            environment=app.config.get('APP_ENV', config_name)
        )
        app.logger.info("Sentry error tracking initialized")

    os.makedirs(app.config['LOG_FOLDER'], exist_ok=True)

    services = KioskServices(app, client=client, brightness_controller=brightness_controller)
    app.extensions[EXTENSION_KEY] = services

    # Local storage must exist and the store must be hydrated before any read
    if hydrate:
        with app.app_context():
            db.create_all()
            services.hydrate(app.config)
            app.logger.info(
                f"Close store hydrated: {len(services.store.closes_by_date)} closes, "
                f"last synced {services.store.last_synced_date}"
            )

    # Register blueprints
    from kiosk.routes.day_close import bp as day_close_bp
    app.register_blueprint(day_close_bp, url_prefix='/day-close')

    from kiosk.routes.operators import bp as operators_bp
    app.register_blueprint(operators_bp, url_prefix='/operators')

    from kiosk.routes.clock import bp as clock_bp
    app.register_blueprint(clock_bp, url_prefix='/clock')

    from kiosk.routes.dashboard import bp as dashboard_bp
    app.register_blueprint(dashboard_bp, url_prefix='/dashboard')

    @app.route('/health')
    def health():
        """Liveness plus device status"""
        from datetime import datetime
        from kiosk.utils.device_schedule import is_within_keep_awake_window

        keep_awake = app.config['KEEP_AWAKE_ENABLED'] and is_within_keep_awake_window(
            datetime.now(), app.config['KEEP_AWAKE_FROM'], app.config['KEEP_AWAKE_TO']
        )
        return jsonify({
            'ok': True,
            'deviceId': app.config['DEVICE_ID'],
            'hydrated': services.store.has_hydrated,
            'keepAwake': keep_awake,
        })

    @app.route('/activity', methods=['POST'])
    def activity():
        """Touch/keypress on the kiosk UI; restores brightness if dimmed"""
        tracked = services.register_activity()
        return jsonify({'success': True, 'dimTracking': tracked})

    # Error handlers
    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        from kiosk.utils.error_logger import report_error
        report_error(getattr(error, 'original_exception', None) or error, tags={'scope': 'http_500'})
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    return app
