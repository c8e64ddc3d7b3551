"""
Order aggregation: turns parsed CSV rows into packing slips.

Each row is one line item. Rows are grouped by customer identity (see
identity_resolver), so a buyer who placed several orders gets one packing slip
listing everything. Aggregation is best-effort: a row that cannot be processed
is logged, counted and skipped, and the rest of the batch carries on.
"""

import math
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from exceptions import EmptyInputError, NoValidOrdersError
from field_mapping import FieldMapping, normalize_mapping
from identity_resolver import resolve_identity_with_source
from logger import get_logger
from packing_slip import UNKNOWN, UNKNOWN_PRODUCT, Customer, PackingSlipDocument, PackingSlipItem
from weight_parser import parse_weight

logger = get_logger(__name__)

Row = Mapping[str, Optional[str]]

# Column names of the TikTok Shop export, used when a field is unmapped
FALLBACK_COLUMNS: Dict[str, tuple] = {
    'orderId': ("Order ID",),
    'recipientName': ("Recipient",),
    'phoneNumber': ("Phone #",),
    'city': ("City",),
    'state': ("Province", "Autonomous Community"),
    'postalCode': ("Zipcode",),
    'sku': ("SKU ID",),
    'sellerSku': ("Seller SKU",),
    'productName': ("Product Name",),
    'quantity': ("Quantity",),
    'weight': ("Weight(kg)",),
}

ADDRESS_FIELDS = ('addressLine1', 'addressLine2', 'city', 'state', 'postalCode')

SHIPPING_INFO_PATTERN = re.compile(r"shipping\s*information", re.IGNORECASE)
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

DEFAULT_QUANTITY = 1


@dataclass
class AggregationStats:
    """Diagnostic counters of one aggregation pass."""
    total_rows: int = 0
    processed_rows: int = 0
    skipped_rows: int = 0
    synthesized_identity_rows: int = 0
    username_from_other_field_rows: int = 0
    mapping_issue_rows: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class AggregationResult:
    documents: List[PackingSlipDocument]
    stats: AggregationStats = field(default_factory=AggregationStats)
    success: bool = True


def _cell(row: Row, header: Optional[str]) -> str:
    """Stripped cell value, '' when the header is unmapped, missing or empty."""
    if not header:
        return ''
    value = row.get(header)
    if value is None:
        return ''
    return str(value).strip()


def field_value(row: Row, mapping: FieldMapping, field_id: str) -> str:
    """Value of a field from its mapped column, else from the known fallback columns."""
    value = _cell(row, mapping.get(field_id))
    if value:
        return value
    for header in FALLBACK_COLUMNS.get(field_id, ()):
        value = _cell(row, header)
        if value:
            return value
    return ''


def parse_quantity(raw: Any) -> Optional[int]:
    """
    Parse a quantity cell the way a lenient integer parser does ("3 pcs" -> 3).

    Returns:
        The quantity, or None if the value is empty, not a number or negative
    """
    if raw is None:
        return None
    if isinstance(raw, float):
        return int(raw) if math.isfinite(raw) and raw >= 0 else None
    match = _LEADING_INT.match(str(raw))
    if not match:
        return None
    quantity = int(match.group(1))
    return quantity if quantity >= 0 else None


def build_address(row: Row, mapping: FieldMapping) -> str:
    """
    Format the shipping address of a row as a single line.

    When neither address line is mapped, a free-text "Shipping Information"
    column is used if the export has one. Otherwise the address parts are
    joined with ", ", skipping empty ones.
    """
    if not mapping.get('addressLine1') and not mapping.get('addressLine2'):
        for header, value in row.items():
            if SHIPPING_INFO_PATTERN.search(header) and _cell(row, header):
                return _cell(row, header)

    parts = [field_value(row, mapping, field_id) for field_id in ADDRESS_FIELDS]
    return ", ".join(part for part in parts if part)


def _missing_mapped_fields(row: Row, mapping: FieldMapping) -> List[str]:
    return [
        field_id for field_id, header in mapping.items()
        if header and header not in row
    ]


def _new_document(row: Row, mapping: FieldMapping, identity: str) -> PackingSlipDocument:
    return PackingSlipDocument(
        order_number=field_value(row, mapping, 'orderId') or UNKNOWN,
        customer=Customer(
            name=field_value(row, mapping, 'recipientName') or UNKNOWN,
            address=build_address(row, mapping),
            phone=field_value(row, mapping, 'phoneNumber') or UNKNOWN,
            username=identity,
        ),
    )


def _build_item(row: Row, mapping: FieldMapping, sku_images: Mapping[str, str],
                row_index: int) -> PackingSlipItem:
    sku = field_value(row, mapping, 'sku')
    seller_sku = field_value(row, mapping, 'sellerSku')

    raw_quantity = field_value(row, mapping, 'quantity')
    quantity = parse_quantity(raw_quantity) if raw_quantity else None
    if quantity is None:
        if raw_quantity:
            logger.warning(
                f"Row {row_index + 1}: Invalid quantity value: {raw_quantity}. "
                f"Using default of {DEFAULT_QUANTITY}."
            )
        quantity = DEFAULT_QUANTITY

    image_url = (sku and sku_images.get(sku)) or (seller_sku and sku_images.get(seller_sku)) or None

    return PackingSlipItem(
        name=field_value(row, mapping, 'productName') or UNKNOWN_PRODUCT,
        sku=sku,
        seller_sku=seller_sku,
        quantity=quantity,
        weight=parse_weight(field_value(row, mapping, 'weight')),
        order_id=field_value(row, mapping, 'orderId') or UNKNOWN,
        image_url=image_url,
    )


def aggregate_orders(rows: Sequence[Row],
                     field_mapping: Optional[Mapping[str, Optional[str]]],
                     sku_images: Optional[Mapping[str, str]] = None) -> AggregationResult:
    """
    Group order rows into packing slips, one per customer identity.

    For each row the customer identity is resolved, the packing slip for that
    identity is created on first sight, and a line item is appended to it.
    Identities are compared case-insensitively; the slip keeps the casing of
    the first row seen.

    Args:
        rows: Parsed CSV rows (header -> value), in file order
        field_mapping: Column mapping; not modified
        sku_images: SKU / seller SKU -> image URL lookup; not modified

    Returns:
        AggregationResult with documents in first-seen identity order

    Raises:
        EmptyInputError: If rows is empty
        NoValidOrdersError: If no row produced a packing slip
    """
    if not rows:
        logger.error("Cannot aggregate orders: no rows supplied")
        raise EmptyInputError("The CSV file is empty")

    mapping = normalize_mapping(field_mapping)
    sku_images = sku_images or {}
    stats = AggregationStats(total_rows=len(rows))

    username_header = mapping.get('buyerUsername')
    if not username_header:
        logger.warning("Buyer Username field is not mapped. Will attempt to find username in data.")

    documents: Dict[str, PackingSlipDocument] = {}

    for row_index, row in enumerate(rows):
        try:
            resolved = resolve_identity_with_source(row, username_header, mapping, row_index)

            missing = _missing_mapped_fields(row, mapping)
            if missing:
                logger.warning(f"Row {row_index + 1}: Missing mapped fields: {', '.join(missing)}")

            key = resolved.key
            document = documents.get(key)
            is_new = document is None
            if is_new:
                document = _new_document(row, mapping, resolved.identity)

            item = _build_item(row, mapping, sku_images, row_index)
            document.add_item(item)
            if is_new:
                documents[key] = document

            # Counters below only cover rows that made it onto a slip
            stats.processed_rows += 1
            if resolved.synthesized:
                stats.synthesized_identity_rows += 1
            elif resolved.from_other_field:
                stats.username_from_other_field_rows += 1
            if missing:
                stats.mapping_issue_rows += 1
        except Exception as e:
            logger.error(f"Row {row_index + 1}: Error processing row: {e}", exc_info=True)
            stats.skipped_rows += 1

    logger.info(
        f"Aggregation statistics: total={stats.total_rows}, processed={stats.processed_rows}, "
        f"skipped={stats.skipped_rows}, synthesized_identity={stats.synthesized_identity_rows}, "
        f"username_from_other_field={stats.username_from_other_field_rows}, "
        f"mapping_issues={stats.mapping_issue_rows}, customers={len(documents)}"
    )

    if not documents:
        raise NoValidOrdersError(
            "No valid orders found in the CSV. Please check your column mappings "
            "and ensure the CSV contains valid order data.",
            stats=stats,
        )

    return AggregationResult(documents=list(documents.values()), stats=stats)
