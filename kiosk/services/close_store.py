"""
Daily Close Store
Durable local state of finalized closes, the in-progress wizard draft and the sync watermark
"""

import copy
import logging
import threading
from datetime import date

from kiosk.services.close_records import (
    AVAILABLE_PRODUCTS, CloseValidationError, non_negative_int, build_daily_close,
    build_seed_closes, build_sold_items
)
from kiosk.services.close_wizard import STEP_FIELDS, WizardStep, resume_screen
from kiosk.utils.helpers import EPOCH_DATE, iso_now, parse_date, to_minor_units

logger = logging.getLogger(__name__)

STORE_KEY = 'daily-close-store'
STORE_VERSION = 1


class StoreNotHydratedError(RuntimeError):
    """Raised when the store is read before hydrate() completed"""


def default_state():
    return {
        'closesByDate': {},
        'lastSyncedDate': EPOCH_DATE,
        'temporalSale': {},
        'closeOperator': None,
    }


def _migrate_v0(state):
    """v0 kept closes as a list and had no draft/operator slots"""
    closes = state.get('closes') or state.get('closesByDate') or {}
    if isinstance(closes, list):
        closes = {close['date']: close for close in closes if isinstance(close, dict) and close.get('date')}
    return {
        'closesByDate': closes,
        'lastSyncedDate': state.get('lastSyncedDate') or EPOCH_DATE,
        'temporalSale': state.get('temporalSale') or {},
        'closeOperator': state.get('closeOperator'),
    }


# stored version -> function upgrading that version's state to the next one
MIGRATIONS = {
    0: _migrate_v0,
}


def is_valid_state(state):
    if not isinstance(state, dict):
        return False
    closes = state.get('closesByDate')
    if not isinstance(closes, dict) or not all(isinstance(c, dict) for c in closes.values()):
        return False
    if not isinstance(state.get('lastSyncedDate'), (str, type(None))):
        return False
    if not isinstance(state.get('temporalSale'), dict):
        return False
    return isinstance(state.get('closeOperator'), (dict, type(None)))


def migrate_state(payload):
    """
    Bring a persisted payload up to the current schema

    Args:
        payload: decoded {'version': n, 'state': {...}} document (or None)

    Returns:
        dict: a valid current-version state; the default state when the
        payload is missing, from the future, or fails validation
    """
    if not isinstance(payload, dict) or not isinstance(payload.get('state'), dict):
        return default_state()

    version = payload.get('version', 0)
    if not isinstance(version, int) or version > STORE_VERSION:
        logger.warning(f"Unknown close store version {version!r}, starting from defaults")
        return default_state()

    state = payload['state']
    while version < STORE_VERSION:
        state = MIGRATIONS[version](state)
        version += 1

    if not is_valid_state(state):
        logger.warning("Persisted close store failed validation, starting from defaults")
        return default_state()
    return state


class DailyCloseStore:
    """
    Single source of truth for the device's closes.

    Holds the state in memory and writes it through to the key-value
    storage on every mutation. Request threads and the periodic task
    thread share one instance, so every read and write holds the lock.
    """

    available_products = AVAILABLE_PRODUCTS

    def __init__(self, storage):
        self.storage = storage
        self.has_hydrated = False
        self._state = default_state()
        self._lock = threading.RLock()

    # Hydration

    def hydrate(self, clean=False, seed=False, production=False, seed_days=20):
        """
        Load persisted state and run the one-time clean/seed step

        Args:
            clean: wipe persisted state and reset the watermark
            seed: replace closes with synthetic history (ignored in production)
            production: whether this is a production build
            seed_days: number of seeded days
        """
        with self._lock:
            self._state = migrate_state(self.storage.get_json(STORE_KEY))

            if clean:
                self.storage.remove_item(STORE_KEY)
                self._state = default_state()
                logger.info("Local close store cleaned")

            if seed and not production:
                self._state['closesByDate'] = build_seed_closes(seed_days)
                self._state['lastSyncedDate'] = EPOCH_DATE
                logger.info(f"Local close store seeded with {seed_days} closes")

            self._commit()
            self.has_hydrated = True
        return self

    def _require_hydrated(self):
        if not self.has_hydrated:
            raise StoreNotHydratedError("Daily close store read before hydration")

    def _commit(self):
        self.storage.set_json(STORE_KEY, {'version': STORE_VERSION, 'state': self._state})

    # Closes

    @property
    def closes_by_date(self):
        with self._lock:
            self._require_hydrated()
            return copy.deepcopy(self._state['closesByDate'])

    def closes(self):
        """Finalized closes sorted by date ascending"""
        return [close for _, close in sorted(self.closes_by_date.items())]

    def upsert_close(self, close):
        """Insert or silently overwrite the close for close['date']"""
        with self._lock:
            self._require_hydrated()
            self._state['closesByDate'][close['date']] = copy.deepcopy(close)
            self._commit()

    def get_close(self, close_date):
        with self._lock:
            self._require_hydrated()
            close = self._state['closesByDate'].get(close_date)
            return copy.deepcopy(close) if close else None

    def is_closed(self, close_date):
        with self._lock:
            self._require_hydrated()
            return close_date in self._state['closesByDate']

    def delete_close(self, close_date):
        with self._lock:
            self._require_hydrated()
            removed = self._state['closesByDate'].pop(close_date, None)
            self._commit()
        return removed is not None

    def clear_all(self):
        with self._lock:
            self._require_hydrated()
            self._state['closesByDate'] = {}
            self._commit()

    # Synchronization

    @property
    def last_synced_date(self):
        with self._lock:
            self._require_hydrated()
            return self._state['lastSyncedDate']

    def set_last_synced_date(self, value):
        with self._lock:
            self._require_hydrated()
            self._state['lastSyncedDate'] = value
            self._commit()

    def should_sync(self):
        """True when at least one close is dated after the watermark"""
        with self._lock:
            closes = self.closes_by_date
            last_synced = self.last_synced_date
        if not closes:
            return False
        newest = max(closes, key=lambda key: parse_date(key) or date.min)
        watermark = parse_date(last_synced)
        if watermark is None:
            return True
        newest_date = parse_date(newest)
        return newest_date is not None and newest_date > watermark

    # Wizard draft

    @property
    def temporal_sale(self):
        with self._lock:
            self._require_hydrated()
            return copy.deepcopy(self._state['temporalSale'])

    def add_sale(self, partial):
        with self._lock:
            self._require_hydrated()
            self._state['temporalSale'].update(copy.deepcopy(partial))
            self._commit()
        return True

    def set_temporal_field(self, step, value):
        """
        Record the data a wizard step contributes

        Stamps stepPosition and the current time on the draft so an
        interrupted wizard can resume at the right screen.

        Raises:
            CloseValidationError: if the value does not fit the step
        """
        step = WizardStep(step)
        if step == WizardStep.ITEMS:
            value = build_sold_items(value)
        elif step == WizardStep.NOTES:
            value = str(value or '')
        else:
            value = non_negative_int(value, STEP_FIELDS[step])

        with self._lock:
            self._require_hydrated()
            draft = self._state['temporalSale']
            draft[STEP_FIELDS[step]] = value
            draft['date'] = iso_now()
            draft['stepPosition'] = int(step)
            self._commit()
            return self.temporal_sale

    def reset_temporal_sales(self):
        with self._lock:
            self._require_hydrated()
            self._state['temporalSale'] = {}
            self._commit()

    def resume_screen(self):
        return resume_screen(self.temporal_sale)

    # Operator performing the close

    @property
    def close_operator(self):
        with self._lock:
            self._require_hydrated()
            return copy.deepcopy(self._state['closeOperator'])

    def set_close_operator(self, operator):
        with self._lock:
            self._require_hydrated()
            self._state['closeOperator'] = copy.deepcopy(operator)
            self._commit()

    def clear_close_operator(self):
        self.set_close_operator(None)

    def finalize_temporal_close(self, close_date=None, operator=None):
        """
        Turn the draft into a DailyClose and store it under its date

        Args:
            close_date: business date, defaults to today
            operator: operator dict, defaults to the validated close operator

        Returns:
            dict: the stored close

        Raises:
            CloseValidationError: if the draft has no items or no operator
        """
        with self._lock:
            draft = self.temporal_sale
            operator = operator or self.close_operator
            if not draft.get('items'):
                raise CloseValidationError("Cannot confirm a close without sold items")
            if not operator:
                raise CloseValidationError("Cannot confirm a close without a validated operator")

            close = build_daily_close(
                close_date or date.today(),
                draft['items'],
                cash_received=to_minor_units(draft.get('cashReceived')),
                bank_transfers_received=to_minor_units(draft.get('bankTransfersReceived')),
                delivery_cash_paid=to_minor_units(draft.get('deliveryCashPaid')),
                other_cash_expenses=to_minor_units(draft.get('otherCashExpenses')),
                notes=draft.get('notes', ''),
                closed_by_user_id=operator.get('userId', ''),
                closed_by_name=operator.get('name', ''),
                closed_by_phone=operator.get('phone', ''),
                closed_by_raw=operator.get('raw'),
            )
            self.upsert_close(close)
            self.reset_temporal_sales()
            self.clear_close_operator()
        logger.info(f"Daily close stored for {close['date']} (expected total {close['expectedTotal']})")
        return close
