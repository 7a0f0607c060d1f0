"""
Keep-awake window and idle screen dimming for the kiosk display
"""

import logging
import re
import time

logger = logging.getLogger(__name__)

DEFAULT_DIM_TIMEOUT_MS = 5 * 60_000


def parse_time_to_minutes(value):
    """'HH:mm' -> minutes since midnight, None when invalid"""
    match = re.match(r'^([01]?\d|2[0-3]):([0-5]\d)$', (value or '').strip())
    if not match:
        return None
    return int(match.group(1)) * 60 + int(match.group(2))


def parse_duration_to_ms(value):
    """
    Parse an idle timeout

    '5' means five minutes, '1:30' one minute thirty seconds.

    Returns:
        int: milliseconds, or None when the value is not understood
    """
    normalized = (value or '').strip()
    if not normalized:
        return None
    if normalized.isdigit():
        return int(normalized) * 60_000

    match = re.match(r'^(\d+):([0-5]\d)$', normalized)
    if not match:
        return None
    return (int(match.group(1)) * 60 + int(match.group(2))) * 1000


def clamp_dim_to(value):
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.5
    if value != value or value in (float('inf'), float('-inf')):
        return 0.5
    return min(1.0, max(0.0, value))


def is_within_keep_awake_window(now, start, end):
    """
    Whether `now` falls in the [start, end) business window

    Windows may wrap midnight (e.g. 18:00-02:00). Equal bounds mean
    always on; an invalid bound means never.
    """
    start_minutes = parse_time_to_minutes(start)
    end_minutes = parse_time_to_minutes(end)
    if start_minutes is None or end_minutes is None:
        return False

    now_minutes = now.hour * 60 + now.minute
    if start_minutes == end_minutes:
        return True
    if start_minutes < end_minutes:
        return start_minutes <= now_minutes < end_minutes
    return now_minutes >= start_minutes or now_minutes < end_minutes


class ScreenDimmer:
    """
    Dims the display after a period without user activity.

    The brightness controller is the device integration and only needs
    get_brightness() and set_brightness(level).
    """

    def __init__(self, controller, timeout, dim_to, clock=time.monotonic):
        self.controller = controller
        self.timeout_ms = parse_duration_to_ms(timeout)
        if self.timeout_ms is None:
            logger.warning(f'Invalid dim timeout "{timeout}". Falling back to 5:00.')
            self.timeout_ms = DEFAULT_DIM_TIMEOUT_MS
        self.dim_to = clamp_dim_to(dim_to)
        self.clock = clock
        self.last_activity_at = clock()
        self.is_dimmed = False
        self.original_brightness = None

    def register_activity(self):
        self.last_activity_at = self.clock()
        self.restore()

    def restore(self):
        if not self.is_dimmed:
            return
        try:
            self.controller.set_brightness(
                self.original_brightness if self.original_brightness is not None else 1
            )
        except Exception as e:
            logger.warning(f"Restoring brightness failed: {e}")
        finally:
            self.is_dimmed = False

    def tick(self):
        """Periodic task body"""
        idle_ms = (self.clock() - self.last_activity_at) * 1000
        if idle_ms < self.timeout_ms or self.is_dimmed:
            return
        try:
            self.original_brightness = self.controller.get_brightness()
            self.controller.set_brightness(self.dim_to)
            self.is_dimmed = True
        except Exception as e:
            logger.warning(f"Dimming screen failed: {e}")
