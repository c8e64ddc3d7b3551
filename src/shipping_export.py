"""
Shipping carrier import file.

Produces one CSV line per recipient with the fixed column set expected by the
carrier's bulk import. Unlike packing slips, rows are grouped by recipient
name (not buyer identity), and the package weight is the plain sum of the
per-row weights.
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd

from exceptions import ExportError
from field_mapping import normalize_mapping
from logger import get_logger
from order_aggregator import Row, field_value
from weight_parser import parse_weight

logger = get_logger(__name__)

SHIPPING_COLUMNS = [
    "Recipient name",
    "Recipient Phone",
    "Recipient e-mail",
    "Recipient address",
    "Recipient ZIP code",
    "Recipient country",
    "Reference",
    "Recip. additional address",
    "Package Description",
    "Weight (Kg)",
]

EMAIL_HEADER_PATTERN = re.compile(r"e-?mail", re.IGNORECASE)
COUNTRY_HEADER_PATTERN = re.compile(r"country", re.IGNORECASE)

# Output column -> field id of the column mapping
_MAPPED_COLUMNS = {
    "Recipient Phone": 'phoneNumber',
    "Recipient address": 'addressLine1',
    "Recipient ZIP code": 'postalCode',
    "Reference": 'orderId',
    "Recip. additional address": 'addressLine2',
    "Package Description": 'productName',
}


def _find_header(headers: Sequence[str], pattern: re.Pattern) -> Optional[str]:
    return next((h for h in headers if pattern.search(h)), None)


def _row_values(row: Row, mapping, email_header, country_header) -> Dict[str, str]:
    values = {column: field_value(row, mapping, field_id) for column, field_id in _MAPPED_COLUMNS.items()}
    values["Recipient e-mail"] = str(row.get(email_header) or '').strip() if email_header else ''
    values["Recipient country"] = str(row.get(country_header) or '').strip() if country_header else ''
    return values


def build_shipping_rows(rows: Sequence[Row], headers: Sequence[str],
                        field_mapping: Mapping[str, Optional[str]]) -> List[Dict[str, str]]:
    """
    Group order rows into one shipping record per recipient.

    Recipients are compared by trimmed, case-insensitive name and keep the
    first-seen spelling. Rows without a recipient name are skipped. Each
    text column takes the first non-empty value of the group; the weight is
    the sum of the rows' parsed weights, formatted with two decimals.

    Returns:
        Records keyed by SHIPPING_COLUMNS, in first-seen recipient order
    """
    mapping = normalize_mapping(field_mapping)
    email_header = _find_header(headers, EMAIL_HEADER_PATTERN)
    country_header = _find_header(headers, COUNTRY_HEADER_PATTERN)

    groups: Dict[str, Dict] = {}
    skipped = 0
    for row_index, row in enumerate(rows):
        name = field_value(row, mapping, 'recipientName')
        if not name:
            logger.debug(f"Row {row_index + 1}: No recipient name found, skipping")
            skipped += 1
            continue

        group = groups.setdefault(name.lower(), {'name': name, 'weight': 0.0, 'values': {}})
        group['weight'] += parse_weight(field_value(row, mapping, 'weight'))
        for column, value in _row_values(row, mapping, email_header, country_header).items():
            if value and not group['values'].get(column):
                group['values'][column] = value

    records = []
    for group in groups.values():
        record = {column: group['values'].get(column, '') for column in SHIPPING_COLUMNS}
        record["Recipient name"] = group['name']
        record["Weight (Kg)"] = f"{group['weight']:.2f}"
        records.append(record)

    logger.info(f"Shipping export: {len(records)} recipients, {skipped} rows without recipient skipped")
    return records


def default_filename(prefix: str = 'packing_slips', now: Optional[datetime] = None) -> str:
    """File name like packing_slips_2025-01-31_14-05.csv"""
    now = now or datetime.now()
    return f"{prefix}_{now:%Y-%m-%d_%H-%M}.csv"


def export_shipping_csv(rows: Sequence[Row], headers: Sequence[str],
                        field_mapping: Mapping[str, Optional[str]],
                        output_path: Union[str, Path]) -> Path:
    """
    Write the shipping CSV (UTF-8 with BOM so spreadsheet tools detect the encoding).

    Raises:
        ExportError: If the file cannot be written
    """
    output_path = Path(output_path)
    records = build_shipping_rows(rows, headers, field_mapping)
    df = pd.DataFrame(records, columns=SHIPPING_COLUMNS)

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(output_path, index=False, encoding='utf-8-sig')
    except OSError as e:
        logger.error(f"Failed to write shipping CSV: {e}", exc_info=True)
        raise ExportError(f"CSV export failed: {e}")

    logger.info(f"Shipping CSV saved to {output_path}")
    return output_path
