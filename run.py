"""
Application Entry Point
Initializes and runs the kiosk application with its periodic tasks
"""

import os
import logging
from kiosk import create_app
from kiosk.models import db
from kiosk.services.close_records import build_seed_closes
from kiosk.services.container import get_services

# Determine configuration environment
config_name = os.environ.get('FLASK_ENV', 'development')
app = create_app(config_name)

# Setup logging
if not os.path.exists(app.config['LOG_FOLDER']):
    os.makedirs(app.config['LOG_FOLDER'])

logging.basicConfig(
    level=getattr(logging, app.config['LOG_LEVEL']),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(os.path.join(app.config['LOG_FOLDER'], 'app.log')),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)


@app.shell_context_processor
def make_shell_context():
    """Make database and services available in Flask shell"""
    services = get_services()
    return {
        'db': db,
        'store': services.store,
        'operators': services.operators,
        'sync': services.sync,
    }


@app.cli.command()
def init_db():
    """Create the local storage tables"""
    logger.info("Initializing database...")
    db.create_all()
    logger.info("Database initialized successfully!")


@app.cli.command()
def run_sync():
    """Manually trigger a daily close sync pass"""
    logger.info("Starting manual sync...")
    result = get_services().sync.run_sync_task(force=True)
    if result is None:
        logger.warning("Backend not reachable, nothing synced")
    else:
        logger.info(f"Sync finished: {result.to_dict()}")


@app.cli.command()
def sync_operators():
    """Refresh the close-operator cache from the backend"""
    services = get_services()
    result = services.operators.sync_operators(services.client)
    logger.info(f"Operator cache {'updated' if result['changed'] else 'unchanged'}: "
                f"{len(result['operators'])} operators")


@app.cli.command()
def seed_closes():
    """Replace local closes with synthetic history (not allowed in production)"""
    if app.config['APP_ENV'] in ('production', 'prod'):
        logger.error("Refusing to seed closes in production")
        return
    store = get_services().store
    store.clear_all()
    for close in build_seed_closes(app.config['SEED_DAYS']).values():
        store.upsert_close(close)
    store.set_last_synced_date('1900-01-01')
    logger.info(f"Seeded {app.config['SEED_DAYS']} closes")


def start_background_services():
    """Register periodic tasks and start the shared tick"""
    logger.info("Starting background services...")
    services = app.extensions['kiosk']
    services.register_periodic_tasks(app.config)

    if app.config['AUTO_SYNC']:
        services.tasks.start()
        logger.info("Periodic tasks started")


if __name__ == '__main__':
    # Check if running in development mode
    is_dev = os.environ.get('FLASK_ENV', 'development') == 'development'
    use_reloader = os.environ.get('FLASK_USE_RELOADER', 'true').lower() == 'true'

    # Start background services (only if not using reloader to avoid duplicate services)
    if not use_reloader or os.environ.get('WERKZEUG_RUN_MAIN') == 'true':
        start_background_services()

    logger.info(f"Starting {app.config['BUSINESS_NAME']} kiosk {app.config['DEVICE_ID']}...")
    logger.info(f"Debug mode: {is_dev}, Auto-reload: {use_reloader}")

    app.run(
        host='0.0.0.0',
        port=5001,
        debug=is_dev,
        use_reloader=use_reloader
    )
