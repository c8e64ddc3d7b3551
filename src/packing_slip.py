"""
Packing slip document model.

A PackingSlipDocument is one shipment unit: one recipient, the items to pack
for them, and the total package weight. Documents serialize to the camelCase
JSON shape of the exported packing slips.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from exceptions import ExportError

UNKNOWN = "Unknown"
UNKNOWN_PRODUCT = "Unknown Product"


@dataclass(frozen=True)
class PackingSlipItem:
    """One line item (one CSV row) on a packing slip. Weight is per unit, in kg."""
    name: str
    sku: str
    seller_sku: str
    quantity: int
    weight: float
    order_id: str
    image_url: Optional[str] = None

    @property
    def line_weight(self) -> float:
        return self.weight * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'name': self.name,
            'sku': self.sku,
            'sellerSku': self.seller_sku,
            'quantity': self.quantity,
            'weight': self.weight,
            'orderId': self.order_id,
        }
        if self.image_url:
            data['imageUrl'] = self.image_url
        return data


@dataclass
class Customer:
    """Recipient of a packing slip; username is the grouping identity."""
    name: str = UNKNOWN
    address: str = ''
    phone: str = UNKNOWN
    username: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'address': self.address,
            'phone': self.phone,
            'username': self.username,
        }


@dataclass
class PackingSlipDocument:
    """
    All items going to one customer.

    ``total_weight`` is a running total: ``add_item`` appends an item and adds
    its ``weight * quantity``, so it always equals the sum over the items added
    so far.

    Attributes:
        order_number: First-seen order ID of the group, or "Unknown"
        customer: Recipient details
        items: Items in CSV row order
        total_weight: Sum of weight * quantity over items, in kg
    """
    order_number: str
    customer: Customer
    items: List[PackingSlipItem] = field(default_factory=list)
    total_weight: float = 0.0

    def add_item(self, item: PackingSlipItem) -> None:
        self.items.append(item)
        self.total_weight += item.line_weight

    @property
    def total_items(self) -> int:
        """Number of individual units to pack (sum of quantities)."""
        return sum(item.quantity for item in self.items)

    @property
    def total_products(self) -> int:
        """Number of line items."""
        return len(self.items)

    @property
    def total_orders(self) -> int:
        """Number of distinct order IDs on the slip (at least 1)."""
        order_ids = {item.order_id for item in self.items if item.order_id and item.order_id != UNKNOWN}
        return len(order_ids) or 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'orderNumber': self.order_number,
            'customer': self.customer.to_dict(),
            'items': [item.to_dict() for item in self.items],
            'totalWeight': self.total_weight,
        }


def documents_to_json(documents: List[PackingSlipDocument], indent: int = 2) -> str:
    """Serialize packing slips to a JSON array."""
    return json.dumps([doc.to_dict() for doc in documents], indent=indent, ensure_ascii=False)


def save_documents_json(documents: List[PackingSlipDocument], output_path: Union[str, Path]) -> Path:
    """
    Write packing slips to a JSON file.

    Raises:
        ExportError: If the file cannot be written
    """
    output_path = Path(output_path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(documents_to_json(documents))
    except OSError as e:
        raise ExportError(f"Failed to save packing slips to {output_path}: {e}")
    return output_path
