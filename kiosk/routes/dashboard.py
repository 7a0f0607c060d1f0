"""
Dashboard Routes
Operational metrics, alerts, summaries and logs for the web console
"""

from datetime import date

from flask import Blueprint, request, jsonify, current_app, send_file
from kiosk.models import SyncLog, ErrorLog
from kiosk.services.container import get_services
from kiosk.utils.export import export_weekly_closes
from kiosk.utils.helpers import format_date, parse_date
from kiosk.utils.metrics import (
    AlertThresholds, build_dashboard_metrics, build_product_baseline,
    format_daily_close_summary, generate_alerts
)

bp = Blueprint('dashboard', __name__)


def _selected_date():
    value = request.args.get('date')
    if not value:
        return date.today()
    return parse_date(value)


@bp.route('/')
def operational_dashboard():
    """Metrics and alerts for one day (default today)"""
    selected = _selected_date()
    if selected is None:
        return jsonify({'success': False, 'error': 'Invalid date'}), 400

    services = get_services()
    selected_date = format_date(selected)
    close = services.store.get_close(selected_date)
    cogs = request.args.get('cogs', type=int)

    metrics = build_dashboard_metrics(close, cogs=cogs)
    baseline = build_product_baseline(
        services.store.closes(), selected, current_app.config['BASELINE_DAYS']
    )
    sync_status = services.sync.get_sync_status(selected_date)
    metrics['isSynced'] = sync_status['syncStatus'] == 'SUCCESS' and metrics['hasClose']

    alerts = generate_alerts(
        selected_date, close, metrics, baseline, sync_status,
        thresholds=AlertThresholds.from_config(current_app.config)
    )
    return jsonify({
        'date': selected_date,
        'close': close,
        'metrics': metrics,
        'baseline': baseline,
        'syncStatus': sync_status,
        'alerts': alerts,
    })


@bp.route('/summary/<close_date>')
def summary(close_date):
    """Copy-paste text summary of a close"""
    services = get_services()
    close = services.store.get_close(close_date)
    if not close:
        return jsonify({'success': False, 'error': f'No close for {close_date}'}), 404
    text = format_daily_close_summary(
        close, current_app.config['DEVICE_ID'], services.sync.get_sync_status(close_date),
        symbol=current_app.config['CURRENCY_SYMBOL']
    )
    return jsonify({'success': True, 'summary': text})


@bp.route('/weekly.csv')
def weekly_csv():
    """Seven-day close report ending at ?date (default today)"""
    selected = _selected_date()
    if selected is None:
        return jsonify({'success': False, 'error': 'Invalid date'}), 400

    output = export_weekly_closes(get_services().store.closes(), selected)
    return send_file(
        output,
        mimetype='text/csv',
        as_attachment=True,
        download_name=f'daily-closes-week-{format_date(selected)}.csv'
    )


@bp.route('/sync-logs')
def sync_logs():
    limit = request.args.get('limit', 50, type=int)
    logs = SyncLog.query.order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(limit).all()
    return jsonify({'logs': [log.to_dict() for log in logs]})


@bp.route('/error-logs')
def error_logs():
    limit = request.args.get('limit', 50, type=int)
    query = ErrorLog.query
    if request.args.get('scope'):
        query = query.filter_by(scope=request.args['scope'])
    logs = query.order_by(ErrorLog.timestamp.desc(), ErrorLog.id.desc()).limit(limit).all()
    return jsonify({'logs': [log.to_dict() for log in logs]})
