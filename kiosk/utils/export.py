"""
CSV exports of the daily close history
"""

import csv
import io
from io import BytesIO

from kiosk.utils.metrics import weekly_close_rows

WEEKLY_COLUMNS = {
    'date': 'Date',
    'hasClose': 'Closed',
    'salesTotal': 'Sales',
    'moneyIn': 'Money In',
    'moneyOut': 'Money Out',
    'net': 'Net',
    'descuadreAmount': 'Descuadre',
    'closedBy': 'Closed By',
}

MONEY_KEYS = {'salesTotal', 'moneyIn', 'moneyOut', 'net', 'descuadreAmount'}


def rows_to_csv(rows, columns):
    """
    Write dict rows as a CSV attachment body

    Args:
        rows: dicts keyed by the keys of `columns`
        columns: mapping row key -> header label, in column order

    Returns:
        BytesIO positioned at the start, UTF-8 with BOM so Excel reads accents
    """
    text_output = io.StringIO()
    writer = csv.DictWriter(text_output, fieldnames=list(columns), extrasaction='ignore')
    writer.writerow(columns)
    writer.writerows(rows)

    output = BytesIO(text_output.getvalue().encode('utf-8-sig'))
    output.seek(0)
    return output


def format_minor_units(value):
    """Cents as a plain decimal string (12345 -> 123.45)"""
    return f"{value / 100:.2f}"


def export_weekly_closes(closes, end_date, days=7):
    """Weekly close report ending at end_date as CSV"""
    rows = []
    for row in weekly_close_rows(closes, end_date, days):
        formatted = dict(row)
        for key in MONEY_KEYS:
            formatted[key] = format_minor_units(row[key])
        formatted['hasClose'] = 'yes' if row['hasClose'] else 'no'
        rows.append(formatted)
    return rows_to_csv(rows, WEEKLY_COLUMNS)
