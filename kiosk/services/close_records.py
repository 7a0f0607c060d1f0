"""
Daily Close records
Product catalog, validated DailyClose construction and seeded history
"""

from datetime import date, datetime, time, timedelta, timezone

from kiosk.utils.helpers import format_date, iso_now, parse_date, to_iso

# All prices are integers with 2 implied decimals, i.e. 15000 == 150.00
AVAILABLE_PRODUCTS = [
    {'productId': '001', 'name': 'Mojarra Frita', 'desc': 'esta rica', 'price': 15000},
    {'productId': '002', 'name': 'Empanada de Camaron con Queso (Orden)', 'desc': 'esta rica', 'price': 10000},
    {'productId': '003', 'name': 'Empanada de Minilla (Orden)', 'desc': 'esta rica', 'price': 10000},
]

SEEDED_CLOSING_USER_ID = '11111111-1111-4111-8111-111111111111'
SEEDED_CLOSING_USER_NAME = 'Super Admin'
SEEDED_CLOSING_USER_PHONE = '521999999999'


class CloseValidationError(ValueError):
    """Raised when a wizard step or close carries invalid data"""


def non_negative_int(value, label):
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise CloseValidationError(f"{label} must be a non-negative integer")
    return value


def build_product_sale(product_id, name, price, qty):
    if not product_id or not name:
        raise CloseValidationError("Sold items need a productId and a name")
    return {
        'productId': str(product_id),
        'name': str(name),
        'price': non_negative_int(price, f"Price for {name}"),
        'qty': non_negative_int(qty, f"Quantity for {name}"),
    }


def build_sold_items(items):
    """
    Validate the sold items of a close

    Args:
        items: list of {'productId', 'name', 'price', 'qty'} dicts

    Raises:
        CloseValidationError: if items is not a list of item objects
    """
    if not isinstance(items, list):
        raise CloseValidationError("Sold items must be a list")
    sales = []
    for item in items:
        if not isinstance(item, dict):
            raise CloseValidationError("Each sold item must be an object")
        sales.append(build_product_sale(item.get('productId'), item.get('name'),
                                        item.get('price'), item.get('qty')))
    return sales


def calculate_expected_total(items):
    """Sum of qty * price over the sold items (minor units)"""
    return sum(int(item['qty']) * int(item['price']) for item in items)


def build_daily_close(close_date, items, cash_received=0, bank_transfers_received=0,
                      delivery_cash_paid=0, other_cash_expenses=0, notes='',
                      closed_by_user_id='', closed_by_name='', closed_by_phone='',
                      closed_by_raw=None, created_at=None):
    """
    Build a finalized DailyClose record

    expectedTotal is always derived from the items so it can never disagree
    with them.

    Raises:
        CloseValidationError: if the date, the items or any amount is invalid
    """
    parsed = parse_date(close_date)
    if parsed is None:
        raise CloseValidationError(f"Invalid close date: {close_date!r}")

    sales = build_sold_items(items)

    amounts = {
        'cashReceived': cash_received,
        'bankTransfersReceived': bank_transfers_received,
        'deliveryCashPaid': delivery_cash_paid,
        'otherCashExpenses': other_cash_expenses,
    }
    for field, amount in amounts.items():
        non_negative_int(amount, field)

    close = {
        'date': format_date(parsed),
        'items': sales,
        **amounts,
        'notes': notes or '',
        'closedByUserId': closed_by_user_id,
        'closedByName': closed_by_name,
        'closedByPhone': closed_by_phone,
        'expectedTotal': calculate_expected_total(sales),
        'createdAt': created_at or iso_now(),
    }
    if closed_by_raw is not None:
        close['closedByRaw'] = closed_by_raw
    return close


def build_seed_closes(count, today=None):
    """Synthetic history of `count` closes ending yesterday (dev builds only)"""
    today = today or date.today()
    closes = {}
    for i in range(count, 0, -1):
        day = today - timedelta(days=i)
        items = [
            build_product_sale(AVAILABLE_PRODUCTS[0]['productId'], AVAILABLE_PRODUCTS[0]['name'],
                               AVAILABLE_PRODUCTS[0]['price'], 3 + (i % 5)),
            build_product_sale(AVAILABLE_PRODUCTS[1]['productId'], AVAILABLE_PRODUCTS[1]['name'],
                               AVAILABLE_PRODUCTS[1]['price'], 2 + (i % 4)),
        ]
        expected_total = calculate_expected_total(items)
        cash_received = round(expected_total * 0.7)
        close = build_daily_close(
            day,
            items,
            cash_received=cash_received,
            bank_transfers_received=expected_total - cash_received,
            delivery_cash_paid=2000 + (i % 3) * 1000,
            other_cash_expenses=1000 + (i % 4) * 500,
            notes='Seeded close',
            closed_by_user_id=SEEDED_CLOSING_USER_ID,
            closed_by_name=SEEDED_CLOSING_USER_NAME,
            closed_by_phone=SEEDED_CLOSING_USER_PHONE,
            created_at=to_iso(datetime.combine(day, time(23, 30), tzinfo=timezone.utc)),
        )
        closes[close['date']] = close
    return closes
