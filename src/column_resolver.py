"""
Automatic column detection for order exports.

Every marketplace names its export columns differently ("Order ID",
"order_number", "Order #", ...). Given the headers of a file, this module
works out which header supplies each logical field.

Matching for a field runs in three stages and the first hit wins:
1. Exact match between a synonym and a header
2. Case-insensitive match
3. Case-insensitive substring match in either direction

When the headers identify a TikTok Shop export, the exact column names of
that format are tried before the generic synonyms.
"""

from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from field_mapping import FIELD_IDS, FieldMapping, normalize_mapping
from logger import get_logger

logger = get_logger(__name__)

MARKETPLACE_TIKTOK_SHOP = 'tiktok_shop'

# Generic header spellings per field, in priority order
GENERIC_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    'orderId': ("order id", "orderid", "order number", "order #", "order no", "order_id", "id"),
    'productName': (
        "product name", "product", "item name", "title", "product title",
        "product_name", "item_name", "name",
    ),
    'sku': ("sku", "product id", "item id", "product code", "product_id", "item_id", "product_code"),
    'sellerSku': (
        "seller sku", "seller id", "merchant sku", "your sku",
        "seller_sku", "merchant_sku", "your_sku",
    ),
    'quantity': ("quantity", "qty", "amount", "count", "item count", "item_count"),
    'buyerUsername': (
        "buyer username", "buyer", "customer username", "username",
        "buyer_username", "customer_username", "user", "customer id",
        "customer_id", "buyer id", "buyer_id", "email", "customer email",
        "buyer email", "customer_email", "buyer_email",
    ),
    'recipientName': (
        "recipient name", "recipient", "customer name", "name", "buyer name",
        "recipient_name", "customer_name", "buyer_name", "ship to name", "shipping name",
    ),
    'phoneNumber': (
        "phone number", "phone", "tel", "telephone", "contact number",
        "phone_number", "contact_number",
    ),
    'addressLine1': (
        "address line 1", "address1", "address line", "street address",
        "address_line_1", "address_1", "street_address", "address", "shipping address",
    ),
    'addressLine2': (
        "address line 2", "address2", "apartment", "suite", "unit",
        "address_line_2", "address_2", "apt", "suite_number",
    ),
    'city': ("city", "town", "municipality"),
    'state': ("state", "province", "region", "county"),
    'postalCode': ("postal code", "zip", "zip code", "postcode", "postal_code", "zip_code"),
    'weight': ("weight", "weight (kg)", "weight kg", "package weight", "item weight", "total weight"),
}

# Exact column names of the TikTok Shop order export
TIKTOK_SHOP_COLUMNS: Dict[str, Tuple[str, ...]] = {
    'orderId': ("Order ID",),
    'productName': ("Product Name",),
    'sku': ("SKU ID",),
    'sellerSku': ("Seller SKU",),
    'quantity': ("Quantity",),
    'buyerUsername': ("Buyer Username",),
    'recipientName': ("Recipient",),
    'phoneNumber': ("Phone #",),
    'addressLine1': ("Street Name",),
    'addressLine2': ("House Name or Number",),
    'city': ("City",),
    'state': ("Province", "Autonomous Community"),
    'postalCode': ("Zipcode",),
    'weight': ("Weight (Kg)", "Weight(kg)", "Weight", "Package Weight"),
}

MARKETPLACE_COLUMNS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    MARKETPLACE_TIKTOK_SHOP: TIKTOK_SHOP_COLUMNS,
}


def detect_marketplace(headers: Sequence[str]) -> Optional[str]:
    """
    Recognize a known marketplace export from its headers.

    A TikTok Shop export is recognized by an exact "Buyer Username" or
    "Order ID" header, or by "Recipient" appearing together with "Phone #".

    Args:
        headers: CSV headers

    Returns:
        Marketplace identifier, or None for a generic export
    """
    header_set = set(headers)
    if "Buyer Username" in header_set or "Order ID" in header_set:
        return MARKETPLACE_TIKTOK_SHOP
    if "Recipient" in header_set and "Phone #" in header_set:
        return MARKETPLACE_TIKTOK_SHOP
    return None


def find_exact_column(headers: Sequence[str], candidates: Sequence[str]) -> Optional[str]:
    """Return the first candidate that is present verbatim in headers."""
    header_set = set(headers)
    for candidate in candidates:
        if candidate in header_set:
            return candidate
    return None


def match_column(headers: Sequence[str], candidates: Sequence[str]) -> Optional[str]:
    """
    Find the header best matching any of the candidate names.

    Args:
        headers: CSV headers, in file order
        candidates: Accepted spellings, in priority order

    Returns:
        The matching header, or None
    """
    usable = [h for h in headers if h and h.strip()]

    # Stage 1: exact
    for candidate in candidates:
        if candidate in usable:
            return candidate

    # Stage 2: case-insensitive
    for candidate in candidates:
        lowered = candidate.lower()
        for header in usable:
            if header.lower() == lowered:
                return header

    # Stage 3: substring in either direction
    lowered_candidates = [candidate.lower() for candidate in candidates]
    for header in usable:
        header_lower = header.lower()
        if any(term in header_lower or header_lower in term for term in lowered_candidates):
            return header

    return None


def resolve_column(headers: Sequence[str], field_id: str,
                   marketplace: Optional[str] = None) -> Optional[str]:
    """
    Determine which header supplies a single logical field.

    Args:
        headers: CSV headers
        field_id: Logical field name (one of FIELD_IDS)
        marketplace: Detected marketplace, whose exact column names are tried
                     before the generic synonyms

    Returns:
        Header name, or None if nothing matches
    """
    if field_id not in GENERIC_SYNONYMS:
        raise KeyError(f"Unknown field: {field_id}")

    if marketplace:
        direct = MARKETPLACE_COLUMNS.get(marketplace, {}).get(field_id, ())
        header = find_exact_column(headers, direct)
        if header:
            return header

    return match_column(headers, GENERIC_SYNONYMS[field_id])


def resolve_column_mapping(headers: Sequence[str],
                           explicit_mapping: Optional[Mapping[str, Optional[str]]] = None,
                           marketplace: Optional[str] = None) -> FieldMapping:
    """
    Fill in the unmapped fields of a column mapping from the file headers.

    Fields the caller already mapped are kept as they are. The input mapping
    is never modified; a new mapping is returned.

    Args:
        headers: CSV headers
        explicit_mapping: Mapping chosen by the user (may be partial or None)
        marketplace: Force a marketplace table; detected from headers if None

    Returns:
        Complete FieldMapping (unresolved fields stay None)
    """
    headers = [str(h) for h in headers]
    mapping = normalize_mapping(explicit_mapping)

    if marketplace is None:
        marketplace = detect_marketplace(headers)
    if marketplace:
        logger.info(f"Detected {marketplace} export format")

    detected: List[str] = []
    for field_id in FIELD_IDS:
        if mapping[field_id]:
            continue
        header = resolve_column(headers, field_id, marketplace)
        if header:
            mapping[field_id] = header
            detected.append(field_id)

    unresolved = [field_id for field_id in FIELD_IDS if not mapping[field_id]]
    logger.info(f"Auto-detected {len(detected)} column(s); {len(unresolved)} field(s) left unmapped")
    if unresolved:
        logger.debug(f"Unmapped fields: {', '.join(unresolved)}")

    return mapping
