"""
Clock Service
Employee check-in / check-out records kept on the device
"""

import logging

from kiosk.utils.helpers import iso_now, parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

STORAGE_KEY = 'MOJARRERIA_CHECK_IN_OUT_V1'
PAYLOAD_VERSION = 1

STATUS_IN = 'IN'
STATUS_OUT = 'OUT'


class ClockStateError(Exception):
    """Check-in while already in, or check-out while already out"""


def default_record():
    return {
        'status': STATUS_OUT,
        'clockInTime': None,
        'lastClockOutTime': None,
        'lastShiftDurationMinutes': None,
    }


class ClockService:
    """Check-in/out records keyed by employee id"""

    def __init__(self, storage):
        self.storage = storage

    def _read_payload(self):
        parsed = self.storage.get_json(STORAGE_KEY)
        if not isinstance(parsed, dict) or not isinstance(parsed.get('records', {}), dict):
            return {'version': PAYLOAD_VERSION, 'updatedAt': '', 'records': {}}
        return {
            'version': PAYLOAD_VERSION,
            'updatedAt': str(parsed.get('updatedAt') or ''),
            'records': parsed.get('records') or {},
        }

    def get_all_records(self):
        return self._read_payload()['records']

    def get_record(self, user_id):
        return self.get_all_records().get(user_id) or default_record()

    def upsert_record(self, user_id, record):
        payload = self._read_payload()
        payload['records'][user_id] = record
        payload['updatedAt'] = iso_now()
        self.storage.set_json(STORAGE_KEY, payload)
        return payload['records']

    def check_in(self, user_id, now=None):
        """Mark an employee IN starting now"""
        record = self.get_record(user_id)
        if record['status'] == STATUS_IN:
            raise ClockStateError(f"Employee {user_id} is already checked in")

        now = parse_iso(now) if now else utc_now()
        next_record = {
            'status': STATUS_IN,
            'clockInTime': to_iso(now),
            'lastClockOutTime': record.get('lastClockOutTime'),
            'lastShiftDurationMinutes': record.get('lastShiftDurationMinutes'),
        }
        self.upsert_record(user_id, next_record)
        logger.info(f"Employee {user_id} checked in")
        return next_record

    def check_out(self, user_id, now=None):
        """
        Mark an employee OUT and compute the shift length

        Duration is whole minutes since clockInTime, never negative; a
        missing or invalid clockInTime yields 0.
        """
        record = self.get_record(user_id)
        if record['status'] != STATUS_IN:
            raise ClockStateError(f"Employee {user_id} is not checked in")

        now = parse_iso(now) if now else utc_now()
        clock_in = parse_iso(record.get('clockInTime'))
        duration = max(0, int((now - clock_in).total_seconds() // 60)) if clock_in else 0

        next_record = {
            'status': STATUS_OUT,
            'clockInTime': None,
            'lastClockOutTime': to_iso(now),
            'lastShiftDurationMinutes': duration,
        }
        self.upsert_record(user_id, next_record)
        logger.info(f"Employee {user_id} checked out after {duration} minutes")
        return next_record


def format_duration(minutes):
    """Human readable shift length, e.g. 7h 05m"""
    hours, rest = divmod(int(minutes or 0), 60)
    return f"{hours}h {rest:02d}m"
