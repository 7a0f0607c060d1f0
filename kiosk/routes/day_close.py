"""
Day Close Routes
Close wizard draft, confirmation, history and synchronization
"""

from flask import Blueprint, request, jsonify, current_app
from kiosk.services.container import get_services
from kiosk.services.close_records import CloseValidationError
from kiosk.services.close_wizard import WizardStep
from kiosk.utils.helpers import parse_date, format_date
from kiosk.utils.metrics import build_dashboard_metrics, is_descuadre

bp = Blueprint('day_close', __name__)

STEP_NAMES = {
    'items': WizardStep.ITEMS,
    'cash': WizardStep.CASH,
    'bank': WizardStep.BANK,
    'other-expenses': WizardStep.OTHER_EXPENSES,
    'delivery': WizardStep.DELIVERY,
    'notes': WizardStep.NOTES,
}


def _draft_response(store):
    return jsonify({
        'success': True,
        'draft': store.temporal_sale,
        'resumeScreen': store.resume_screen().value,
        'closeOperator': store.close_operator,
    })


@bp.route('/products')
def products():
    """Products that can be entered in the sales step"""
    return jsonify({'products': get_services().store.available_products})


@bp.route('/draft')
def get_draft():
    """Current wizard draft and the screen to resume on"""
    return _draft_response(get_services().store)


@bp.route('/draft/<step>', methods=['PUT'])
def set_draft_step(step):
    """Record the data of one wizard step"""
    if step not in STEP_NAMES:
        return jsonify({'success': False, 'error': f'Unknown step {step}'}), 404

    store = get_services().store
    data = request.get_json(silent=True) or {}
    if 'value' not in data:
        return jsonify({'success': False, 'error': 'Missing value'}), 400

    try:
        store.set_temporal_field(STEP_NAMES[step], data['value'])
    except CloseValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    return _draft_response(store)


@bp.route('/draft', methods=['DELETE'])
def reset_draft():
    """Discard the draft"""
    store = get_services().store
    store.reset_temporal_sales()
    store.clear_close_operator()
    return _draft_response(store)


@bp.route('/draft/preview')
def preview_draft():
    """Reconciliation of the draft as it stands, for the confirmation screen"""
    draft = get_services().store.temporal_sale
    preview = {
        'items': draft.get('items', []),
        'cashReceived': draft.get('cashReceived', 0),
        'bankTransfersReceived': draft.get('bankTransfersReceived', 0),
        'deliveryCashPaid': draft.get('deliveryCashPaid', 0),
        'otherCashExpenses': draft.get('otherCashExpenses', 0),
    }
    metrics = build_dashboard_metrics(preview)
    threshold = current_app.config['DESCUADRE_THRESHOLD']
    return jsonify({
        'metrics': metrics,
        'descuadre': is_descuadre(metrics, threshold),
    })


@bp.route('/confirm', methods=['POST'])
def confirm():
    """Finalize the draft into the close for the given (or today's) date"""
    store = get_services().store
    data = request.get_json(silent=True) or {}

    close_date = None
    if data.get('date'):
        close_date = parse_date(data['date'])
        if close_date is None:
            return jsonify({'success': False, 'error': 'Invalid date'}), 400

    try:
        close = store.finalize_temporal_close(close_date=close_date)
    except CloseValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    return jsonify({'success': True, 'close': close}), 201


@bp.route('/closes')
def list_closes():
    """All stored closes, oldest first"""
    store = get_services().store
    return jsonify({
        'closes': store.closes(),
        'lastSyncedDate': store.last_synced_date,
        'shouldSync': store.should_sync(),
    })


@bp.route('/closes/<close_date>')
def get_close(close_date):
    store = get_services().store
    close = store.get_close(close_date)
    if not close:
        return jsonify({'success': False, 'error': f'No close for {close_date}'}), 404
    return jsonify({'success': True, 'close': close, 'metrics': build_dashboard_metrics(close)})


@bp.route('/closes/<close_date>', methods=['DELETE'])
def delete_close(close_date):
    """Support-only removal of a stored close"""
    parsed = parse_date(close_date)
    if parsed is None or not get_services().store.delete_close(format_date(parsed)):
        return jsonify({'success': False, 'error': f'No close for {close_date}'}), 404
    current_app.logger.warning(f"Daily close {close_date} deleted by support")
    return jsonify({'success': True})


@bp.route('/sync', methods=['POST'])
def sync_now():
    """Manually trigger a sync pass"""
    result = get_services().sync.run_sync_task(force=True)
    if result is None:
        return jsonify({'success': False, 'error': 'Backend not reachable'}), 503
    return jsonify({'success': result.ok, 'result': result.to_dict()})


@bp.route('/sync/status')
def sync_status():
    services = get_services()
    return jsonify({
        'lastSyncedDate': services.store.last_synced_date,
        'shouldSync': services.store.should_sync(),
        **services.sync.get_sync_status(),
    })
