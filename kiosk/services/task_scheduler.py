"""
Interval Task Registry
Runs a fixed, ordered set of named tasks sequentially on a shared interval tick
"""

import logging
import threading
from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)

TICK_JOB_ID = 'interval_tasks'


class IntervalTaskRegistry:
    """
    Named periodic tasks sharing one tick.

    Within a tick tasks run one after another in registration order. A task
    that raises is logged and the tick moves on to the next task. The tick
    job is limited to a single running instance, so a slow tick delays the
    next one instead of overlapping it.
    """

    def __init__(self, interval_seconds=60):
        self.interval_seconds = interval_seconds
        self.scheduler = None
        self._tasks = []
        self._lock = threading.Lock()

    @property
    def task_ids(self):
        return [task_id for task_id, _ in self._tasks]

    def add_task(self, task_id, fn):
        """Register a task; re-adding an id replaces it and moves it to the end"""
        with self._lock:
            self._tasks = [(tid, f) for tid, f in self._tasks if tid != task_id]
            self._tasks.append((task_id, fn))

    def remove_task(self, task_id):
        with self._lock:
            self._tasks = [(tid, f) for tid, f in self._tasks if tid != task_id]

    def clear_tasks(self):
        with self._lock:
            self._tasks = []

    def run_tasks(self):
        """
        Run every registered task once, in order

        Returns:
            dict: task id -> True when it completed, False when it raised
        """
        with self._lock:
            tasks = list(self._tasks)

        outcome = {}
        for task_id, fn in tasks:
            try:
                fn()
                outcome[task_id] = True
            except Exception as e:
                logger.error(f'Task "{task_id}" failed: {e}', exc_info=True)
                outcome[task_id] = False
        return outcome

    def start(self):
        """Start ticking in the background"""
        if self.scheduler:
            logger.warning("Task scheduler already running")
            return

        if not self.interval_seconds or self.interval_seconds <= 0:
            logger.info("Task interval disabled, not starting scheduler")
            return

        self.scheduler = BackgroundScheduler()
        self.scheduler.add_job(
            func=self.run_tasks,
            trigger='interval',
            seconds=self.interval_seconds,
            id=TICK_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.start()
        logger.info(f"Task scheduler started. Running {self.task_ids} every {self.interval_seconds}s")

    def stop(self):
        """Stop scheduling future ticks; a tick already running is not interrupted"""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
            logger.info("Task scheduler stopped")
