"""
Service container
Wires the stores and services for one application instance
"""

from flask import current_app

from kiosk.services.api_client import BackendClient
from kiosk.services.clock_service import ClockService
from kiosk.services.close_store import DailyCloseStore
from kiosk.services.operator_cache import OperatorCache, bootstrap_operator_from_config
from kiosk.services.storage import KeyValueStorage
from kiosk.services.sync_service import DailyCloseSyncService
from kiosk.services.task_scheduler import IntervalTaskRegistry
from kiosk.utils.device_schedule import ScreenDimmer

EXTENSION_KEY = 'kiosk'


class KioskServices:
    """Everything the routes and background tasks share, injected per app"""

    def __init__(self, app, client=None, storage=None, brightness_controller=None):
        self.storage = storage or KeyValueStorage()
        self.client = client or BackendClient.from_config(app.config)
        self.store = DailyCloseStore(self.storage)
        self.operators = OperatorCache(self.storage, bootstrap_operator_from_config(app.config))
        self.clock = ClockService(self.storage)
        self.sync = DailyCloseSyncService(app, self.store, self.client)
        self.tasks = IntervalTaskRegistry(app.config.get('TASK_INTERVAL_SECONDS', 60))
        self.brightness_controller = brightness_controller
        self.dimmer = None

    def hydrate(self, config):
        """Load the close store once, honouring the clean/seed flags"""
        return self.store.hydrate(
            clean=config.get('CLEAN_LOCAL_STATE', False),
            seed=config.get('SEED_LOCAL_STATE', False),
            production=config.get('APP_ENV') in ('production', 'prod'),
            seed_days=config.get('SEED_DAYS', 20),
        )

    def register_periodic_tasks(self, config, brightness_controller=None):
        """
        Register the kiosk's periodic tasks on the shared tick

        syncDailyCloses always runs; dimScreen only when dimming is enabled
        and a brightness controller is available, either passed here or
        given to create_app.
        """
        brightness_controller = brightness_controller or self.brightness_controller
        self.tasks.add_task('syncDailyCloses', self.sync.run_sync_task)

        if config.get('DIM_SCREEN_ENABLED') and brightness_controller is not None:
            self.dimmer = ScreenDimmer(
                brightness_controller,
                config.get('DIM_SCREEN_TIMEOUT'),
                config.get('DIM_SCREEN_TO'),
            )
            self.tasks.add_task('dimScreen', self.dimmer.tick)
        else:
            self.dimmer = None
            self.tasks.remove_task('dimScreen')

    def register_activity(self):
        """Operator touched the kiosk: restart the idle timer and undim"""
        if self.dimmer is None:
            return False
        self.dimmer.register_activity()
        return True


def get_services():
    """Services of the current application"""
    return current_app.extensions[EXTENSION_KEY]
