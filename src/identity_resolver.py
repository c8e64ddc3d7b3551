"""
Customer identity resolution.

Rows are grouped into packing slips by customer identity, normally the buyer
username. Exports do not always carry one, so the identity is found through an
ordered chain of strategies; the first strategy producing a value wins. The
last strategy cannot fail, so every row gets an identity.
"""

import re
from typing import Callable, Mapping, NamedTuple, Optional, Tuple

from logger import get_logger

logger = get_logger(__name__)

Row = Mapping[str, Optional[str]]

# Username columns used by known marketplace exports
KNOWN_USERNAME_COLUMNS = ("Buyer Username", "buyer username", "BuyerUsername", "Username", "username")

USERNAME_HEADER_PATTERNS = (
    re.compile(r"user", re.IGNORECASE),
    re.compile(r"buyer", re.IGNORECASE),
    re.compile(r"customer", re.IGNORECASE),
    re.compile(r"account", re.IGNORECASE),
)
EMAIL_HEADER_PATTERN = re.compile(r"email", re.IGNORECASE)
ORDER_ID_HEADER_PATTERN = re.compile(r"order\s*id", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

# Strategy names
SOURCE_MAPPED_USERNAME = 'mapped_username'
SOURCE_KNOWN_COLUMN = 'known_username_column'
SOURCE_USERNAME_LIKE = 'username_like_column'
SOURCE_EMAIL = 'email_column'
SOURCE_MAPPED_ORDER_ID = 'mapped_order_id'
SOURCE_MAPPED_RECIPIENT = 'mapped_recipient'
SOURCE_DETECTED_ORDER_ID = 'detected_order_id'
SOURCE_ROW_INDEX = 'row_index'

# Identity taken from a column other than the mapped username column
OTHER_FIELD_SOURCES = frozenset({SOURCE_KNOWN_COLUMN, SOURCE_USERNAME_LIKE, SOURCE_EMAIL})

# Identity made up from non-username data
SYNTHESIZED_SOURCES = frozenset({
    SOURCE_MAPPED_ORDER_ID,
    SOURCE_MAPPED_RECIPIENT,
    SOURCE_DETECTED_ORDER_ID,
    SOURCE_ROW_INDEX,
})


class IdentityContext(NamedTuple):
    """Inputs shared by all identity strategies for one row."""
    row: Row
    username_header: Optional[str]
    order_id_header: Optional[str]
    recipient_header: Optional[str]
    row_index: int


class IdentityStrategy(NamedTuple):
    name: str
    extract: Callable[[IdentityContext], Optional[str]]


class ResolvedIdentity(NamedTuple):
    identity: str
    source: str

    @property
    def key(self) -> str:
        return identity_key(self.identity)

    @property
    def synthesized(self) -> bool:
        return self.source in SYNTHESIZED_SOURCES

    @property
    def from_other_field(self) -> bool:
        return self.source in OTHER_FIELD_SOURCES


def _text(value) -> str:
    """Return a cell value as stripped text ('' for missing)."""
    if value is None:
        return ''
    return str(value).strip()


def _column_value(row: Row, header: Optional[str]) -> str:
    if not header:
        return ''
    return _text(row.get(header))


def _first_matching_value(row: Row, patterns) -> Optional[str]:
    for header, value in row.items():
        if not isinstance(value, str) or not value.strip():
            continue
        if any(pattern.search(header) for pattern in patterns):
            return value.strip()
    return None


def _from_mapped_username(ctx: IdentityContext) -> Optional[str]:
    return _column_value(ctx.row, ctx.username_header) or None


def _from_known_column(ctx: IdentityContext) -> Optional[str]:
    for header in KNOWN_USERNAME_COLUMNS:
        value = ctx.row.get(header)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _from_username_like_column(ctx: IdentityContext) -> Optional[str]:
    return _first_matching_value(ctx.row, USERNAME_HEADER_PATTERNS)


def _from_email_column(ctx: IdentityContext) -> Optional[str]:
    return _first_matching_value(ctx.row, (EMAIL_HEADER_PATTERN,))


def _from_mapped_order_id(ctx: IdentityContext) -> Optional[str]:
    order_id = _column_value(ctx.row, ctx.order_id_header)
    return f"order_{order_id}" if order_id else None


def _from_mapped_recipient(ctx: IdentityContext) -> Optional[str]:
    recipient = _column_value(ctx.row, ctx.recipient_header)
    if not recipient:
        return None
    return f"customer_{_WHITESPACE.sub('_', recipient)}"


def _from_detected_order_id(ctx: IdentityContext) -> Optional[str]:
    for header, value in ctx.row.items():
        if ORDER_ID_HEADER_PATTERN.search(header) and _text(value):
            return f"order_{_text(value)}"
    return None


def _from_row_index(ctx: IdentityContext) -> Optional[str]:
    return f"unknown_{ctx.row_index}"


IDENTITY_STRATEGIES: Tuple[IdentityStrategy, ...] = (
    IdentityStrategy(SOURCE_MAPPED_USERNAME, _from_mapped_username),
    IdentityStrategy(SOURCE_KNOWN_COLUMN, _from_known_column),
    IdentityStrategy(SOURCE_USERNAME_LIKE, _from_username_like_column),
    IdentityStrategy(SOURCE_EMAIL, _from_email_column),
    IdentityStrategy(SOURCE_MAPPED_ORDER_ID, _from_mapped_order_id),
    IdentityStrategy(SOURCE_MAPPED_RECIPIENT, _from_mapped_recipient),
    IdentityStrategy(SOURCE_DETECTED_ORDER_ID, _from_detected_order_id),
    IdentityStrategy(SOURCE_ROW_INDEX, _from_row_index),
)


def identity_key(identity: str) -> str:
    """Grouping key for an identity: identities differing only in case merge."""
    return identity.lower()


def resolve_identity_with_source(row: Row,
                                 mapped_username_header: Optional[str] = None,
                                 mapping: Optional[Mapping[str, Optional[str]]] = None,
                                 row_index: int = 0,
                                 strategies: Tuple[IdentityStrategy, ...] = IDENTITY_STRATEGIES) -> ResolvedIdentity:
    """
    Resolve the customer identity of a row and report which strategy found it.

    Args:
        row: Header -> value mapping for one CSV line
        mapped_username_header: Header mapped to the buyer username, if any
        mapping: Full column mapping; its orderId and recipientName entries
                 feed the synthesized identities
        row_index: Zero-based index of the row in the file
        strategies: Strategy chain to evaluate, in order

    Returns:
        ResolvedIdentity with a non-empty identity
    """
    mapping = mapping or {}
    ctx = IdentityContext(
        row=row,
        username_header=mapped_username_header,
        order_id_header=mapping.get('orderId'),
        recipient_header=mapping.get('recipientName'),
        row_index=row_index,
    )

    for strategy in strategies:
        identity = strategy.extract(ctx)
        if identity:
            if strategy.name != SOURCE_MAPPED_USERNAME:
                logger.debug(f"Row {row_index + 1}: identity '{identity}' from {strategy.name}")
            return ResolvedIdentity(identity, strategy.name)

    # Only reachable with a custom strategy chain lacking the row-index fallback
    return ResolvedIdentity(f"unknown_{row_index}", SOURCE_ROW_INDEX)


def resolve_identity(row: Row,
                     mapped_username_header: Optional[str] = None,
                     mapping: Optional[Mapping[str, Optional[str]]] = None,
                     row_index: int = 0) -> str:
    """
    Resolve the customer identity of a row.

    Never fails and always returns a non-empty string. See
    resolve_identity_with_source for the arguments.
    """
    return resolve_identity_with_source(row, mapped_username_header, mapping, row_index).identity
