"""
Logical order fields and the column mapping that feeds them.

A column mapping associates each logical field with the CSV header that
supplies its value, or with None when the field is unmapped. The field order
below is significant: saved mappings are stored as plain lists in this order.
"""

from typing import Dict, Iterable, List, Mapping, Optional

from logger import get_logger

logger = get_logger(__name__)

FieldMapping = Dict[str, Optional[str]]

# Logical fields, in the order used for saved mappings
FIELD_IDS = (
    'orderId',
    'productName',
    'sku',
    'sellerSku',
    'quantity',
    'buyerUsername',
    'recipientName',
    'phoneNumber',
    'addressLine1',
    'addressLine2',
    'city',
    'state',
    'postalCode',
    'weight',
)

FIELD_LABELS = {
    'orderId': 'Order ID',
    'productName': 'Product Name',
    'sku': 'SKU',
    'sellerSku': 'Seller SKU',
    'quantity': 'Quantity',
    'buyerUsername': 'Buyer Username',
    'recipientName': 'Recipient Name',
    'phoneNumber': 'Phone Number',
    'addressLine1': 'Address Line 1',
    'addressLine2': 'Address Line 2',
    'city': 'City',
    'state': 'State',
    'postalCode': 'Postal Code',
    'weight': 'Weight (Kg)',
}

# Fields a complete mapping is expected to cover. Missing ones are only
# reported; aggregation falls back to defaults for them.
RECOMMENDED_FIELDS = (
    'buyerUsername',
    'orderId',
    'productName',
    'sku',
    'sellerSku',
    'quantity',
    'recipientName',
    'phoneNumber',
    'weight',
)

# Spellings of "unmapped" accepted from saved or user-supplied mappings
_UNMAPPED_VALUES = ('', 'none')


def empty_mapping() -> FieldMapping:
    """Return a mapping with every field unmapped."""
    return {field_id: None for field_id in FIELD_IDS}


def normalize_mapping(mapping: Optional[Mapping[str, Optional[str]]]) -> FieldMapping:
    """
    Build a clean FieldMapping from loosely formatted input.

    Unknown field names are dropped, "none" and empty strings become None,
    and header names are stripped of surrounding whitespace.

    Args:
        mapping: Any field -> header mapping, or None

    Returns:
        New mapping covering exactly FIELD_IDS
    """
    result = empty_mapping()
    if not mapping:
        return result

    for field_id, header in mapping.items():
        if field_id not in result:
            logger.warning(f"Ignoring unknown field in column mapping: {field_id}")
            continue
        if header is None:
            continue
        header = str(header).strip()
        if header.lower() in _UNMAPPED_VALUES:
            continue
        result[field_id] = header

    return result


def mapping_to_list(mapping: Mapping[str, Optional[str]]) -> List[str]:
    """Convert a mapping to the compact list form ("" for unmapped)."""
    return [mapping.get(field_id) or '' for field_id in FIELD_IDS]


def mapping_from_list(values: Iterable[Optional[str]]) -> FieldMapping:
    """
    Convert the compact list form back into a mapping.

    Shorter lists leave the remaining fields unmapped.
    """
    values = list(values)
    raw = {
        field_id: values[index] if index < len(values) else None
        for index, field_id in enumerate(FIELD_IDS)
    }
    return normalize_mapping(raw)


def mapped_fields(mapping: Mapping[str, Optional[str]]) -> Dict[str, str]:
    """Return only the fields that are mapped to a header."""
    return {field_id: header for field_id, header in mapping.items() if header}


def find_missing_columns(mapping: Mapping[str, Optional[str]], headers: Iterable[str]) -> List[str]:
    """
    List fields whose mapped header does not exist in the file.

    Args:
        mapping: Column mapping
        headers: Headers present in the CSV

    Returns:
        Field IDs mapped to absent headers
    """
    header_set = set(headers)
    return [
        field_id for field_id, header in mapping.items()
        if header and header not in header_set
    ]


def find_unmapped_recommended(mapping: Mapping[str, Optional[str]]) -> List[str]:
    """List recommended fields that are still unmapped."""
    return [field_id for field_id in RECOMMENDED_FIELDS if not mapping.get(field_id)]
