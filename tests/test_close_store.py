"""
Unit Tests for the Daily Close Store

Tests cover:
- DailyClose construction and validation
- Upsert, lookup and deletion by date
- Sync watermark and should_sync
- Persisted state migration and hydration (clean / seed)
- Wizard draft steps, resume screen and finalization
"""

import pytest
import sys
import os
import threading
from datetime import date

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kiosk.services.close_records import (
    CloseValidationError, build_daily_close, build_seed_closes, calculate_expected_total
)
from kiosk.services.close_store import (
    STORE_KEY, STORE_VERSION, DailyCloseStore, StoreNotHydratedError, default_state, migrate_state
)
from kiosk.services.close_wizard import Screens, WizardStep, resume_screen
from kiosk.utils.helpers import EPOCH_DATE


OPERATOR = {
    'userId': 'user-1',
    'name': 'Operator One',
    'phone': '5215550001111',
    'validatedAt': '2026-02-25T22:00:00.000Z',
    'raw': {'source': 'test'},
}


# ============================================================================
# Building closes
# ============================================================================

class TestBuildDailyClose:

    def test_expected_total_is_sum_of_subtotals(self, sample_items):
        close = build_daily_close('2026-02-25', sample_items)
        assert close['expectedTotal'] == 65000
        assert calculate_expected_total(sample_items) == 65000

    def test_date_is_normalized(self, sample_items):
        close = build_daily_close(date(2026, 2, 5), sample_items)
        assert close['date'] == '2026-02-05'

    def test_invalid_date_rejected(self, sample_items):
        with pytest.raises(CloseValidationError):
            build_daily_close('25/02/2026', sample_items)

    def test_negative_amount_rejected(self, sample_items):
        with pytest.raises(CloseValidationError):
            build_daily_close('2026-02-25', sample_items, cash_received=-1)

    def test_float_quantity_rejected(self):
        items = [{'productId': '001', 'name': 'Mojarra Frita', 'price': 15000, 'qty': 1.5}]
        with pytest.raises(CloseValidationError):
            build_daily_close('2026-02-25', items)

    def test_item_without_product_id_rejected(self):
        with pytest.raises(CloseValidationError):
            build_daily_close('2026-02-25', [{'name': 'Mojarra Frita', 'price': 15000, 'qty': 1}])

    @pytest.mark.parametrize('items', ['abc', [1], {'productId': '001'}, None])
    def test_malformed_items_rejected(self, items):
        with pytest.raises(CloseValidationError):
            build_daily_close('2026-02-25', items)

    def test_closed_by_raw_only_when_given(self, sample_items):
        assert 'closedByRaw' not in build_daily_close('2026-02-25', sample_items)
        close = build_daily_close('2026-02-25', sample_items, closed_by_raw={'source': 'x'})
        assert close['closedByRaw'] == {'source': 'x'}

    def test_seed_closes_end_yesterday(self):
        closes = build_seed_closes(20, today=date(2026, 3, 1))
        assert len(closes) == 20
        assert max(closes) == '2026-02-28'
        assert min(closes) == '2026-02-09'
        for close in closes.values():
            assert close['expectedTotal'] == calculate_expected_total(close['items'])


# ============================================================================
# Close storage
# ============================================================================

class TestCloseStorage:

    def test_upsert_and_get(self, store, make_close):
        store.upsert_close(make_close('2026-02-25'))
        assert store.is_closed('2026-02-25')
        assert store.get_close('2026-02-25')['expectedTotal'] == 65000
        assert store.get_close('2026-02-26') is None

    def test_upsert_same_date_overwrites(self, store, make_close):
        store.upsert_close(make_close('2026-02-25', notes='first'))
        store.upsert_close(make_close('2026-02-25', notes='second'))
        assert len(store.closes_by_date) == 1
        assert store.get_close('2026-02-25')['notes'] == 'second'

    def test_closes_sorted_ascending(self, store, make_close):
        for day in ('2026-02-27', '2026-02-25', '2026-02-26'):
            store.upsert_close(make_close(day))
        assert [close['date'] for close in store.closes()] == ['2026-02-25', '2026-02-26', '2026-02-27']

    def test_returned_close_is_a_copy(self, store, make_close):
        store.upsert_close(make_close('2026-02-25'))
        close = store.get_close('2026-02-25')
        close['notes'] = 'changed'
        assert store.get_close('2026-02-25')['notes'] == 'Test close'

    def test_delete_close(self, store, make_close):
        store.upsert_close(make_close('2026-02-25'))
        assert store.delete_close('2026-02-25') is True
        assert store.delete_close('2026-02-25') is False
        assert not store.is_closed('2026-02-25')

    def test_clear_all_keeps_watermark(self, store, make_close):
        store.upsert_close(make_close('2026-02-25'))
        store.set_last_synced_date('2026-02-25')
        store.clear_all()
        assert store.closes() == []
        assert store.last_synced_date == '2026-02-25'

    def test_mutations_are_persisted(self, store, storage, make_close):
        store.upsert_close(make_close('2026-02-25'))
        payload = storage.get_json(STORE_KEY)
        assert payload['version'] == STORE_VERSION
        assert '2026-02-25' in payload['state']['closesByDate']

    def test_read_before_hydration_raises(self, storage):
        with pytest.raises(StoreNotHydratedError):
            DailyCloseStore(storage).closes()

    def test_reads_while_another_thread_upserts(self, store, make_close):
        errors = []
        done = threading.Event()

        def read_closes():
            while not done.is_set():
                try:
                    store.closes_by_date
                    store.should_sync()
                except RuntimeError as e:
                    errors.append(e)
                    return

        reader = threading.Thread(target=read_closes)
        reader.start()
        try:
            for day in range(1, 29):
                for month in range(1, 12):
                    store.upsert_close(make_close(f'2025-{month:02d}-{day:02d}'))
        finally:
            done.set()
            reader.join()

        assert errors == []
        assert len(store.closes_by_date) == 28 * 11


class TestShouldSync:

    def test_no_closes(self, store):
        assert store.last_synced_date == EPOCH_DATE
        assert store.should_sync() is False

    def test_close_after_watermark(self, store, make_close):
        store.upsert_close(make_close('2026-02-25'))
        assert store.should_sync() is True

    def test_watermark_at_newest_close(self, store, make_close):
        store.upsert_close(make_close('2026-02-24'))
        store.upsert_close(make_close('2026-02-25'))
        store.set_last_synced_date('2026-02-25')
        assert store.should_sync() is False

    def test_unparseable_watermark_means_sync(self, store, make_close):
        store.upsert_close(make_close('2026-02-25'))
        store.set_last_synced_date('not-a-date')
        assert store.should_sync() is True


# ============================================================================
# Migration and hydration
# ============================================================================

class TestMigrateState:

    def test_missing_payload_gives_defaults(self):
        assert migrate_state(None) == default_state()

    def test_future_version_gives_defaults(self):
        payload = {'version': STORE_VERSION + 1, 'state': {'closesByDate': {'x': {}}}}
        assert migrate_state(payload) == default_state()

    def test_version_zero_list_is_keyed_by_date(self):
        payload = {'version': 0, 'state': {
            'closes': [{'date': '2026-02-25', 'items': []}, {'notes': 'no date'}],
            'lastSyncedDate': '2026-02-20',
        }}
        state = migrate_state(payload)
        assert list(state['closesByDate']) == ['2026-02-25']
        assert state['lastSyncedDate'] == '2026-02-20'
        assert state['temporalSale'] == {}
        assert state['closeOperator'] is None

    def test_invalid_current_state_gives_defaults(self):
        payload = {'version': STORE_VERSION, 'state': {
            'closesByDate': ['not', 'a', 'map'],
            'lastSyncedDate': EPOCH_DATE,
            'temporalSale': {},
            'closeOperator': None,
        }}
        assert migrate_state(payload) == default_state()

    def test_valid_state_passes_through(self):
        state = {
            'closesByDate': {'2026-02-25': {'date': '2026-02-25'}},
            'lastSyncedDate': '2026-02-24',
            'temporalSale': {'stepPosition': 2},
            'closeOperator': None,
        }
        assert migrate_state({'version': STORE_VERSION, 'state': state}) == state


class TestHydration:

    def test_hydrate_loads_persisted_state(self, store, storage, make_close):
        store.upsert_close(make_close('2026-02-25'))
        store.set_last_synced_date('2026-02-24')

        reloaded = DailyCloseStore(storage).hydrate()
        assert reloaded.has_hydrated
        assert reloaded.is_closed('2026-02-25')
        assert reloaded.last_synced_date == '2026-02-24'

    def test_hydrate_corrupt_storage_starts_empty(self, storage):
        storage.set_item(STORE_KEY, '{broken json')
        reloaded = DailyCloseStore(storage).hydrate()
        assert reloaded.closes() == []
        assert reloaded.last_synced_date == EPOCH_DATE

    def test_clean_wipes_state(self, store, storage, make_close):
        store.upsert_close(make_close('2026-02-25'))
        store.set_last_synced_date('2026-02-25')

        reloaded = DailyCloseStore(storage).hydrate(clean=True)
        assert reloaded.closes() == []
        assert reloaded.last_synced_date == EPOCH_DATE

    def test_seed_replaces_closes(self, storage):
        reloaded = DailyCloseStore(storage).hydrate(seed=True, seed_days=5)
        assert len(reloaded.closes()) == 5
        assert reloaded.last_synced_date == EPOCH_DATE
        assert reloaded.should_sync() is True

    def test_seed_ignored_in_production(self, storage):
        reloaded = DailyCloseStore(storage).hydrate(seed=True, production=True, seed_days=5)
        assert reloaded.closes() == []


# ============================================================================
# Wizard draft
# ============================================================================

class TestWizardDraft:

    def test_fresh_draft_resumes_at_login(self, store):
        assert store.temporal_sale == {}
        assert store.resume_screen() == Screens.OPERATOR_LOGIN

    @pytest.mark.parametrize('step,screen', [
        (WizardStep.CASH, Screens.INCOME_REPORT),
        (WizardStep.BANK, Screens.OUTCOME_REPORT),
        (WizardStep.OTHER_EXPENSES, Screens.OUTCOME_REPORT),
        (WizardStep.DELIVERY, Screens.INCOME_OUTPUT_RESUME),
    ])
    def test_amount_steps_set_resume_screen(self, store, step, screen):
        draft = store.set_temporal_field(step, 1000)
        assert draft['stepPosition'] == int(step)
        assert store.resume_screen() == screen

    def test_items_step(self, store, sample_items):
        draft = store.set_temporal_field(WizardStep.ITEMS, sample_items)
        assert draft['items'][0]['productId'] == '001'
        assert draft['stepPosition'] == 1
        assert draft['date'].endswith('Z')
        assert store.resume_screen() == Screens.DAILY_SALES_CONFIRM

    def test_notes_step(self, store):
        draft = store.set_temporal_field(WizardStep.NOTES, 'Todo bien')
        assert draft['notes'] == 'Todo bien'
        assert store.resume_screen() == Screens.INCOME_OUTPUT_RESUME

    def test_negative_amount_rejected(self, store):
        with pytest.raises(CloseValidationError):
            store.set_temporal_field(WizardStep.CASH, -5)
        assert store.temporal_sale == {}

    @pytest.mark.parametrize('items', ['abc', [1], {'productId': '001'}])
    def test_malformed_items_rejected(self, store, items):
        with pytest.raises(CloseValidationError):
            store.set_temporal_field(WizardStep.ITEMS, items)
        assert store.temporal_sale == {}

    def test_unknown_step_position_resumes_at_login(self):
        assert resume_screen({'stepPosition': 99}) == Screens.OPERATOR_LOGIN
        assert resume_screen(None) == Screens.OPERATOR_LOGIN

    def test_reset(self, store):
        store.set_temporal_field(WizardStep.CASH, 100)
        store.reset_temporal_sales()
        assert store.temporal_sale == {}

    def test_add_sale_merges(self, store):
        store.add_sale({'cashReceived': 100})
        store.add_sale({'notes': 'x'})
        assert store.temporal_sale == {'cashReceived': 100, 'notes': 'x'}


class TestFinalizeTemporalClose:

    def _fill_draft(self, store, sample_items):
        store.set_temporal_field(WizardStep.ITEMS, sample_items)
        store.set_temporal_field(WizardStep.CASH, 50000)
        store.set_temporal_field(WizardStep.BANK, 13500)
        store.set_temporal_field(WizardStep.OTHER_EXPENSES, 1000)
        store.set_temporal_field(WizardStep.DELIVERY, 2000)
        store.set_temporal_field(WizardStep.NOTES, 'Cierre normal')

    def test_finalize_stores_close(self, store, sample_items):
        self._fill_draft(store, sample_items)
        store.set_close_operator(OPERATOR)

        close = store.finalize_temporal_close(close_date='2026-02-25')

        assert close['date'] == '2026-02-25'
        assert close['expectedTotal'] == 65000
        assert close['cashReceived'] == 50000
        assert close['bankTransfersReceived'] == 13500
        assert close['closedByUserId'] == 'user-1'
        assert close['closedByRaw'] == {'source': 'test'}
        assert store.get_close('2026-02-25') == close

    def test_finalize_resets_draft_and_operator(self, store, sample_items):
        self._fill_draft(store, sample_items)
        store.set_close_operator(OPERATOR)
        store.finalize_temporal_close(close_date='2026-02-25')

        assert store.temporal_sale == {}
        assert store.close_operator is None
        assert store.resume_screen() == Screens.OPERATOR_LOGIN

    def test_finalize_defaults_to_today(self, store, sample_items):
        self._fill_draft(store, sample_items)
        close = store.finalize_temporal_close(operator=OPERATOR)
        assert close['date'] == date.today().strftime('%Y-%m-%d')

    def test_finalize_without_items(self, store):
        store.set_close_operator(OPERATOR)
        with pytest.raises(CloseValidationError):
            store.finalize_temporal_close(close_date='2026-02-25')

    def test_finalize_without_operator(self, store, sample_items):
        self._fill_draft(store, sample_items)
        with pytest.raises(CloseValidationError):
            store.finalize_temporal_close(close_date='2026-02-25')
        assert store.temporal_sale['items']
