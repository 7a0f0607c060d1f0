"""
Sync Service
Pushes locally finalized daily closes to the backend and keeps the sync watermark
"""

import logging
from datetime import date, datetime

from kiosk.models import db, SyncLog
from kiosk.utils.error_logger import report_error
from kiosk.utils.helpers import (
    EPOCH_DATE, end_of_day_iso, format_date, iso_now, parse_date, parse_iso,
    to_iso, to_minor_units
)

logger = logging.getLogger(__name__)

# Backend defect: some payload timestamps blow up its serializer with this message
TIMESTAMP_DEFECT_MARKER = 'toISOString'


class SyncResult:
    """Outcome of one sync pass"""

    def __init__(self, ok, synced_at, synced_count=0, failed_dates=None):
        self.ok = ok
        self.synced_at = synced_at
        self.synced_count = synced_count
        self.failed_dates = failed_dates or []

    def to_dict(self):
        return {
            'ok': self.ok,
            'syncedAt': self.synced_at,
            'syncedCount': self.synced_count,
            'failedDates': self.failed_dates,
        }

    def __repr__(self):
        return f'<SyncResult ok={self.ok} syncedAt={self.synced_at}>'


def get_unsynced_closes(closes_by_date, last_synced_date=None):
    """
    Closes still to push, oldest first

    Args:
        closes_by_date: mapping date -> close
        last_synced_date: watermark; when unset every close is a candidate

    Returns:
        list: closes dated strictly after the watermark, sorted ascending
    """
    ordered = sorted(
        (closes_by_date or {}).values(),
        key=lambda close: parse_date(close.get('date')) or date.min
    )
    if not last_synced_date:
        return ordered

    watermark = parse_date(last_synced_date)
    if watermark is None:
        return ordered
    return [
        close for close in ordered
        if parse_date(close.get('date')) is not None and parse_date(close.get('date')) > watermark
    ]


def normalize_close_for_sync(close):
    """
    Coerce a stored close into the payload shape the backend accepts

    Numbers become non-negative integers (0 when missing), the date becomes
    YYYY-MM-DD and createdAt a valid ISO timestamp, falling back to the end
    of the close's day.

    Returns:
        dict: normalized close, or None when the date cannot be parsed
    """
    parsed_date = parse_date((close or {}).get('date'))
    if parsed_date is None:
        return None

    raw_items = close.get('items')
    items = [
        {
            'productId': str(item['productId']),
            'name': str(item['name']),
            'price': to_minor_units(item.get('price')),
            'qty': to_minor_units(item.get('qty')),
        }
        for item in (raw_items if isinstance(raw_items, list) else [])
        if isinstance(item, dict) and item.get('productId') and item.get('name')
    ]

    expected_total = close.get('expectedTotal')
    if isinstance(expected_total, (int, float)) and not isinstance(expected_total, bool):
        expected_total = to_minor_units(expected_total)
    else:
        expected_total = sum(item['qty'] * item['price'] for item in items)

    created_at = parse_iso(close.get('createdAt'))
    created_at = to_iso(created_at) if created_at else end_of_day_iso(parsed_date)

    normalized = {
        'date': format_date(parsed_date),
        'items': items,
        'cashReceived': to_minor_units(close.get('cashReceived')),
        'bankTransfersReceived': to_minor_units(close.get('bankTransfersReceived')),
        'deliveryCashPaid': to_minor_units(close.get('deliveryCashPaid')),
        'otherCashExpenses': to_minor_units(close.get('otherCashExpenses')),
        'notes': str(close.get('notes') or ''),
        'closedByUserId': str(close.get('closedByUserId') or ''),
        'closedByName': str(close.get('closedByName') or ''),
        'closedByPhone': str(close.get('closedByPhone') or ''),
        'expectedTotal': expected_total,
        'createdAt': created_at,
    }
    if isinstance(close.get('closedByRaw'), dict):
        normalized['closedByRaw'] = close['closedByRaw']
    return normalized


def has_timestamp_error(error):
    """Whether an upstream error is the backend's timestamp serialization defect"""
    messages = [str(getattr(error, 'message', '') or error)]
    messages.extend(
        str(item.get('message', '')) for item in (getattr(error, 'graphql_errors', None) or [])
        if isinstance(item, dict)
    )
    return any(TIMESTAMP_DEFECT_MARKER in message for message in messages)


class DailyCloseSyncService:
    """Service for synchronizing local daily closes with the backend"""

    def __init__(self, app, store, client, device_id=None, reporter=None):
        self.app = app
        self.store = store
        self.client = client
        self.device_id = device_id or app.config.get('DEVICE_ID')
        self.reporter = reporter or report_error

    def _push(self, normalized):
        """
        Send one close, retrying once on the timestamp defect

        Returns:
            bool: whether the backend acknowledged the close
        """
        variables = {
            'deviceId': self.device_id,
            'date': normalized['date'],
            'payload': {**normalized, 'receivedAt': normalized['createdAt']},
        }
        logger.info(f"Sending daily close {variables['date']} (createdAt {normalized['createdAt']})")

        try:
            self.client.upsert_daily_close_raw(variables['deviceId'], variables['date'], variables['payload'])
            return True
        except Exception as error:
            if has_timestamp_error(error):
                return self._retry_with_fresh_timestamps(variables, normalized)

            self.reporter(error, tags={'scope': 'sync_daily_closes_single_mutation'}, extra={
                'deviceId': self.device_id,
                'failingDate': normalized['date'],
                'failingCreatedAt': normalized['createdAt'],
                'variables': variables,
                'graphQLErrors': getattr(error, 'graphql_errors', None),
                'networkError': str(getattr(error, 'network_error', None) or '') or None,
                'message': str(error),
            })
            return False

    def _retry_with_fresh_timestamps(self, variables, normalized):
        fallback_created_at = iso_now()
        retry_variables = {
            **variables,
            'payload': {
                **variables['payload'],
                'createdAt': fallback_created_at,
                'receivedAt': fallback_created_at,
            },
        }

        try:
            self.client.upsert_daily_close_raw(
                retry_variables['deviceId'], retry_variables['date'], retry_variables['payload']
            )
        except Exception as retry_error:
            self.reporter(retry_error, tags={'scope': 'sync_daily_closes_single_mutation_retry_failed'}, extra={
                'deviceId': self.device_id,
                'failingDate': normalized['date'],
                'variables': retry_variables,
            })
            return False

        self.reporter(
            RuntimeError('syncDailyCloses recovered from toISOString payload error'),
            tags={'scope': 'sync_daily_closes_recovered'},
            extra={
                'deviceId': self.device_id,
                'failingDate': normalized['date'],
                'originalCreatedAt': normalized['createdAt'],
                'fallbackCreatedAt': fallback_created_at,
            }
        )
        return True

    def sync_daily_closes(self):
        """
        Push every close dated after the watermark, oldest first

        A failing close is reported and skipped; the pass continues with the
        next one. The result's synced_at is the last date that individually
        succeeded, and persisting it as the new watermark is the caller's job.

        Returns:
            SyncResult
        """
        last_synced_date = None
        closes_to_sync = []

        try:
            last_synced_date = self.store.last_synced_date
            previous_watermark = last_synced_date or EPOCH_DATE
            closes_to_sync = get_unsynced_closes(self.store.closes_by_date, last_synced_date)

            if not closes_to_sync:
                logger.debug(f"No closes to sync, watermark {previous_watermark}")
                return SyncResult(True, previous_watermark)

            synced_count = 0
            last_synced_close_date = None
            failed_dates = []

            for close in closes_to_sync:
                normalized = normalize_close_for_sync(close)

                if normalized is None:
                    self.reporter(ValueError('Invalid daily close skipped before sync'),
                                  tags={'scope': 'sync_daily_closes_invalid_payload'},
                                  extra={
                                      'originalDate': close.get('date'),
                                      'originalCreatedAt': close.get('createdAt'),
                                  })
                    failed_dates.append(close.get('date'))
                    continue

                if not self._push(normalized):
                    failed_dates.append(normalized['date'])
                    continue

                synced_count += 1
                last_synced_close_date = normalized['date']

            logger.info(f"Sync completed: {synced_count} synced, {len(failed_dates)} failed")

            if synced_count == 0 or not last_synced_close_date:
                return SyncResult(False, previous_watermark, 0, failed_dates)

            return SyncResult(True, last_synced_close_date, synced_count, failed_dates)

        except Exception as e:
            self.reporter(e, tags={'scope': 'sync_daily_closes'}, extra={
                'deviceId': self.device_id,
                'closesPendingCount': len(closes_to_sync),
                'firstPendingDate': closes_to_sync[0].get('date') if closes_to_sync else None,
                'lastPendingDate': closes_to_sync[-1].get('date') if closes_to_sync else None,
                'lastSyncedDate': last_synced_date,
                'attemptedDates': [close.get('date') for close in closes_to_sync],
            })
            return SyncResult(False, last_synced_date or EPOCH_DATE)

    def run_sync_task(self, force=False):
        """
        Periodic task body: sync when needed and the backend is reachable

        Persists the new watermark on success and records a SyncLog row.

        Args:
            force: sync even when the store reports nothing pending

        Returns:
            SyncResult or None when the pass was skipped
        """
        with self.app.app_context():
            if not force and not self.store.should_sync():
                logger.debug("Nothing pending, skipping sync")
                return None

            if not self.client.is_reachable():
                logger.info("Backend not reachable, skipping sync")
                return None

            sync_log = SyncLog(device_id=self.device_id, started_at=datetime.utcnow())
            result = self.sync_daily_closes()

            if result.ok:
                self.store.set_last_synced_date(result.synced_at)

            sync_log.status = 'SUCCESS' if result.ok else 'FAILED'
            sync_log.synced_count = result.synced_count
            sync_log.failed_count = len(result.failed_dates)
            sync_log.synced_at = result.synced_at
            sync_log.failed_dates = ','.join(str(d) for d in result.failed_dates) or None
            if result.failed_dates:
                sync_log.error_message = f"Failed to sync: {', '.join(str(d) for d in result.failed_dates)}"
            sync_log.finished_at = datetime.utcnow()
            db.session.add(sync_log)
            db.session.commit()

            return result

    def get_sync_status(self, close_date=None):
        """
        Sync status for alerting

        Args:
            close_date: when given, a close at or before the watermark counts as synced

        Returns:
            dict: syncStatus (SUCCESS, FAILED, PENDING), lastSyncAttemptAt, lastErrorMessage
        """
        latest = SyncLog.query.order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).first()
        last_attempt = to_iso(latest.started_at) if latest else None

        watermark = parse_date(self.store.last_synced_date)
        requested = parse_date(close_date)
        if requested and watermark and requested <= watermark:
            return {'syncStatus': 'SUCCESS', 'lastSyncAttemptAt': last_attempt, 'lastErrorMessage': None}

        if latest and latest.status == 'FAILED':
            return {'syncStatus': 'FAILED', 'lastSyncAttemptAt': last_attempt,
                    'lastErrorMessage': latest.error_message}

        status = 'SUCCESS' if not self.store.should_sync() else 'PENDING'
        return {'syncStatus': status, 'lastSyncAttemptAt': last_attempt, 'lastErrorMessage': None}
