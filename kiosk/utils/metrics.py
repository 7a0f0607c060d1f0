"""
Daily Close Metrics

Financial signals derived from a close for the confirmation screen and the
dashboard, plus the alert rules evaluated on top of them. All amounts are
integers in minor units (cents). Everything here is a pure function of its
inputs.
"""

from datetime import datetime, timedelta, timezone

from kiosk.utils.helpers import format_currency, parse_date, parse_iso


class AlertThresholds:
    """Tunable limits for the alert rules"""

    def __init__(self, descuadre_threshold=1000, expense_ratio_threshold=0.4,
                 sync_stale_minutes=15, drop_factor=0.6, missing_close_hour=17):
        self.descuadre_threshold = descuadre_threshold
        self.expense_ratio_threshold = expense_ratio_threshold
        self.sync_stale_minutes = sync_stale_minutes
        self.drop_factor = drop_factor
        self.missing_close_hour = missing_close_hour

    @classmethod
    def from_config(cls, config):
        return cls(
            descuadre_threshold=config.get('DESCUADRE_THRESHOLD', 1000),
            expense_ratio_threshold=config.get('EXPENSE_RATIO_THRESHOLD', 0.4),
            sync_stale_minutes=config.get('SYNC_STALE_MINUTES', 15),
            drop_factor=config.get('DROP_FACTOR', 0.6),
            missing_close_hour=config.get('MISSING_CLOSE_HOUR', 17),
        )


DEFAULT_ALERT_THRESHOLDS = AlertThresholds()


def sales_total(close):
    """Sum of item subtotals (qty * price)"""
    return sum(int(item.get('qty', 0)) * int(item.get('price', 0)) for item in close.get('items', []))


def build_dashboard_metrics(close, cogs=None):
    """
    Metrics for one close

    Args:
        close: DailyClose dict, or None when the day has no close
        cogs: cost of goods sold for the day, supplied by the costing side

    Returns:
        dict with salesTotal, cogs, grossProfit, grossMarginPct, moneyIn,
        moneyOut, net, descuadreAmount, hasClose
    """
    if not close:
        return {
            'salesTotal': 0,
            'cogs': 0,
            'grossProfit': 0,
            'grossMarginPct': 0,
            'moneyIn': 0,
            'moneyOut': 0,
            'net': 0,
            'descuadreAmount': 0,
            'hasClose': False,
        }

    total = sales_total(close)
    cogs = int(cogs or 0)
    gross_profit = total - cogs
    money_in = close.get('cashReceived', 0) + close.get('bankTransfersReceived', 0)
    money_out = close.get('deliveryCashPaid', 0) + close.get('otherCashExpenses', 0)

    return {
        'salesTotal': total,
        'cogs': cogs,
        'grossProfit': gross_profit,
        'grossMarginPct': (gross_profit / total) * 100 if total > 0 else 0,
        'moneyIn': money_in,
        'moneyOut': money_out,
        'net': money_in - money_out,
        'descuadreAmount': money_in - total,
        'hasClose': True,
    }


def is_descuadre(metrics, threshold=DEFAULT_ALERT_THRESHOLDS.descuadre_threshold):
    """Cash mismatch beyond tolerance"""
    return metrics['hasClose'] and abs(metrics['descuadreAmount']) > threshold


def build_product_baseline(closes, before_date, days=7):
    """
    Trailing average quantity per product

    Args:
        closes: iterable of DailyClose dicts
        before_date: only closes strictly before this date count
        days: size of the trailing window

    Returns:
        list of {'productId', 'name', 'avgQty', 'days'} over the closes found
    """
    end = parse_date(before_date)
    start = end - timedelta(days=days)
    window = [
        close for close in closes
        if parse_date(close.get('date')) and start <= parse_date(close['date']) < end
    ]
    if not window:
        return []

    totals = {}
    names = {}
    for close in window:
        for item in close.get('items', []):
            totals[item['productId']] = totals.get(item['productId'], 0) + int(item.get('qty', 0))
            names[item['productId']] = item.get('name', '')

    return [
        {'productId': product_id, 'name': names[product_id],
         'avgQty': qty / len(window), 'days': len(window)}
        for product_id, qty in sorted(totals.items())
    ]


def generate_alerts(selected_date, close, metrics, baseline, sync_status,
                    now=None, thresholds=DEFAULT_ALERT_THRESHOLDS):
    """
    Evaluate every alert rule for a day

    Rules: missing close past the cutoff hour today, descuadre beyond the
    threshold, expenses above a share of sales, stale or failed sync, and
    per-product quantity drops against the trailing baseline.

    Args:
        selected_date: YYYY-MM-DD being inspected
        close: that day's close or None
        metrics: output of build_dashboard_metrics(close)
        baseline: output of build_product_baseline
        sync_status: {'syncStatus', 'lastSyncAttemptAt', 'lastErrorMessage'}
        now: local datetime of evaluation
        thresholds: AlertThresholds

    Returns:
        list of alert dicts (id, severity, title, description, actionLabel, actionTarget)
    """
    now = now or datetime.now()
    alerts = []

    selected = parse_date(selected_date)
    if not close and selected == now.date() and now.hour >= thresholds.missing_close_hour:
        alerts.append({
            'id': 'missing-close',
            'severity': 'error',
            'title': 'Missing close',
            'description': f"No DailyClose was found for {selected_date} after {thresholds.missing_close_hour}:00.",
            'actionLabel': 'Create close',
            'actionTarget': '/day-close/draft',
        })

    if close and abs(metrics['descuadreAmount']) > thresholds.descuadre_threshold:
        alerts.append({
            'id': 'descuadre',
            'severity': 'error',
            'title': 'Descuadre detected',
            'description': f"Difference between money in and item sales is {metrics['descuadreAmount'] / 100:.2f}.",
            'actionLabel': 'Review close details',
            'actionTarget': f'/day-close/closes/{selected_date}',
        })

    if close and metrics['salesTotal'] > 0 and \
            metrics['moneyOut'] > metrics['salesTotal'] * thresholds.expense_ratio_threshold:
        alerts.append({
            'id': 'high-expenses',
            'severity': 'warn',
            'title': 'High expenses',
            'description': 'Operational expenses are above configured threshold for this close.',
            'actionLabel': 'Inspect expenses',
            'actionTarget': f'/day-close/closes/{selected_date}',
        })

    if sync_status.get('syncStatus') != 'SUCCESS':
        last_attempt = parse_iso(sync_status.get('lastSyncAttemptAt'))
        if last_attempt:
            reference = now if now.tzinfo else now.astimezone(timezone.utc)
            stale_minutes = (reference - last_attempt).total_seconds() / 60
        else:
            stale_minutes = float('inf')
        if sync_status.get('syncStatus') == 'FAILED' or stale_minutes > thresholds.sync_stale_minutes:
            description = sync_status.get('lastErrorMessage') or \
                f"Latest sync is stale ({stale_minutes:.0f} minutes) and not marked as SUCCESS."
            alerts.append({
                'id': 'sync-failure',
                'severity': 'error',
                'title': 'Sync failure or pending',
                'description': description,
                'actionLabel': 'View sync logs',
                'actionTarget': '/dashboard/sync-logs',
            })

    if close:
        by_product = {entry['productId']: entry for entry in baseline}
        for item in close.get('items', []):
            product_baseline = by_product.get(item['productId'])
            if not product_baseline or product_baseline['avgQty'] <= 0:
                continue
            if item['qty'] < product_baseline['avgQty'] * thresholds.drop_factor:
                alerts.append({
                    'id': f"drop-{item['productId']}",
                    'severity': 'warn',
                    'title': 'Abnormal product drop',
                    'description': f"{item['name']} qty ({item['qty']}) is below baseline avg "
                                   f"({product_baseline['avgQty']:.1f}).",
                    'actionLabel': 'Check inventory',
                    'actionTarget': f'/day-close/closes/{selected_date}',
                })

    return alerts


def format_daily_close_summary(close, device_id, sync_status=None, symbol='$'):
    """Plain-text summary suitable for pasting into a chat"""
    metrics = build_dashboard_metrics(close)
    status = (sync_status or {}).get('syncStatus', 'PENDING')
    lines = [
        f"MOJARRERIA Daily Close {close['date']}",
        f"Device: {device_id}",
        f"Sales: {format_currency(metrics['salesTotal'], symbol)}",
        f"Money In: {format_currency(metrics['moneyIn'], symbol)}",
        f"Money Out: {format_currency(metrics['moneyOut'], symbol)}",
        f"Net: {format_currency(metrics['net'], symbol)}",
        f"Sync: {status}",
    ]
    return '\n'.join(lines)


def weekly_close_rows(closes, end_date, days=7):
    """One row per day of the week ending at end_date (inclusive), oldest first"""
    end = parse_date(end_date)
    by_date = {close['date']: close for close in closes}
    rows = []
    for offset in range(days - 1, -1, -1):
        day = (end - timedelta(days=offset)).strftime('%Y-%m-%d')
        close = by_date.get(day)
        metrics = build_dashboard_metrics(close)
        rows.append({
            'date': day,
            'hasClose': metrics['hasClose'],
            'salesTotal': metrics['salesTotal'],
            'moneyIn': metrics['moneyIn'],
            'moneyOut': metrics['moneyOut'],
            'net': metrics['net'],
            'descuadreAmount': metrics['descuadreAmount'],
            'closedBy': close.get('closedByName', '') if close else '',
        })
    return rows
