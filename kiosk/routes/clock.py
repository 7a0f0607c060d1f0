"""
Clock Routes
Employee check-in and check-out
"""

from flask import Blueprint, jsonify
from kiosk.services.clock_service import ClockStateError, format_duration
from kiosk.services.container import get_services

bp = Blueprint('clock', __name__)


@bp.route('/records')
def records():
    return jsonify({'records': get_services().clock.get_all_records()})


@bp.route('/<user_id>')
def record(user_id):
    return jsonify({'userId': user_id, 'record': get_services().clock.get_record(user_id)})


@bp.route('/<user_id>/check-in', methods=['POST'])
def check_in(user_id):
    try:
        result = get_services().clock.check_in(user_id)
    except ClockStateError as e:
        return jsonify({'success': False, 'error': str(e)}), 409
    return jsonify({'success': True, 'record': result})


@bp.route('/<user_id>/check-out', methods=['POST'])
def check_out(user_id):
    try:
        result = get_services().clock.check_out(user_id)
    except ClockStateError as e:
        return jsonify({'success': False, 'error': str(e)}), 409
    return jsonify({
        'success': True,
        'record': result,
        'shiftDuration': format_duration(result['lastShiftDurationMinutes']),
    })
