"""
Operator Routes
Close-operator login (online first, cached fallback) and cache maintenance
"""

from flask import Blueprint, request, jsonify
from kiosk.services.container import get_services
from kiosk.services.operator_cache import OperatorAuthError, authenticate_operator
from kiosk.utils.error_logger import report_error
from kiosk.utils.helpers import iso_now

bp = Blueprint('operators', __name__)


@bp.route('/login', methods=['POST'])
def login():
    """Validate phone + PIN and make the operator the close operator"""
    services = get_services()
    data = request.get_json(silent=True) or {}

    online = services.client.is_reachable()
    try:
        operator = authenticate_operator(
            data.get('phone'), data.get('pin'), services.operators,
            client=services.client, online=online
        )
    except OperatorAuthError as e:
        return jsonify({'success': False, 'error': str(e)}), 401

    services.store.set_close_operator({
        'userId': operator['userId'],
        'name': operator['name'],
        'phone': operator['phone'],
        'validatedAt': iso_now(),
        'raw': operator.get('raw'),
    })
    return jsonify({'success': True, 'operator': {k: v for k, v in operator.items() if k != 'raw'}})


@bp.route('/sync', methods=['POST'])
def sync_operators():
    """Refresh the operator cache from the backend"""
    services = get_services()
    try:
        result = services.operators.sync_operators(services.client)
    except Exception as e:
        report_error(e, tags={'scope': 'daily_close_operator_bootstrap'})
        if not services.operators.has_cached_operators():
            return jsonify({
                'success': False,
                'error': 'No se pudieron descargar usuarios del equipo. Contacta soporte.'
            }), 503
        return jsonify({'success': False, 'error': str(e)}), 502

    return jsonify({
        'success': True,
        'changed': result['changed'],
        'count': len(result['operators']),
        'lastFetchedAt': result['lastFetchedAt'],
    })


@bp.route('/summary')
def summary():
    operators = get_services().operators
    return jsonify({**operators.get_summary(), 'hasOperators': operators.has_cached_operators()})
