"""
Tests for order_aggregator: grouping order rows into packing slips.

Tests cover:
- Grouping by customer identity (case-insensitive, first-seen order)
- Item construction (quantity, weight, fallbacks, SKU images)
- Weight totals
- Address formatting
- Diagnostic counters and fatal errors
"""

import pytest

from column_resolver import resolve_column_mapping
from exceptions import EmptyInputError, NoValidOrdersError
from order_aggregator import (
    AggregationStats,
    aggregate_orders,
    build_address,
    parse_quantity,
)
from field_mapping import normalize_mapping


MAPPING = {
    'orderId': "OrderID",
    'buyerUsername': "Buyer",
    'recipientName': "Name",
    'productName': "Product",
    'sku': "SKU",
    'quantity': "Qty",
    'weight': "Weight",
}


def row(order_id="1", buyer="jane", product="Mug", qty="1", weight="1", sku="", name="Jane Doe"):
    return {
        "OrderID": order_id,
        "Buyer": buyer,
        "Name": name,
        "Product": product,
        "SKU": sku,
        "Qty": qty,
        "Weight": weight,
    }


class TestGrouping:

    def test_end_to_end_with_detected_mapping(self):
        rows = [
            {"OrderID": "1", "Buyer": "alice", "Product": "Mug", "Qty": "2", "Weight": "0.5 kg"},
            {"OrderID": "2", "Buyer": "Alice", "Product": "Plate", "Qty": "1", "Weight": "1,9"},
        ]
        mapping = resolve_column_mapping(list(rows[0]))
        result = aggregate_orders(rows, mapping)

        assert len(result.documents) == 1
        doc = result.documents[0]
        assert doc.order_number == "1"
        assert doc.customer.username == "alice"
        assert [item.name for item in doc.items] == ["Mug", "Plate"]
        assert doc.total_weight == pytest.approx(2.9)
        assert doc.total_orders == 2
        assert result.stats.processed_rows == 2

    def test_identities_merge_case_insensitively(self):
        result = aggregate_orders([row(buyer="Jane"), row(buyer="jane", order_id="2")], MAPPING)
        assert len(result.documents) == 1
        assert result.documents[0].customer.username == "Jane"

    def test_documents_in_first_seen_order(self):
        rows = [row(buyer="zoe"), row(buyer="adam"), row(buyer="zoe"), row(buyer="mia")]
        result = aggregate_orders(rows, MAPPING)
        assert [doc.customer.username for doc in result.documents] == ["zoe", "adam", "mia"]

    def test_customer_fields_from_first_row(self):
        rows = [row(order_id="7", name="Jane Doe"), row(order_id="8", name="J. Doe")]
        doc = aggregate_orders(rows, MAPPING).documents[0]
        assert doc.order_number == "7"
        assert doc.customer.name == "Jane Doe"

    def test_item_order_is_row_order(self):
        rows = [row(product="A"), row(buyer="bob", product="B"), row(product="C")]
        docs = aggregate_orders(rows, MAPPING).documents
        assert [item.name for item in docs[0].items] == ["A", "C"]

    def test_missing_username_uses_order_id(self):
        mapping = {'orderId': "Order", 'productName': "Product"}
        result = aggregate_orders([{"Order": "X123", "Product": "Mug"}], mapping)
        assert result.documents[0].customer.username == "order_X123"
        assert result.stats.synthesized_identity_rows == 1

    def test_username_from_other_column_counted(self):
        mapping = {'orderId': "OrderID", 'buyerUsername': "Nick"}
        rows = [{"OrderID": "1", "Nick": "", "Buyer Username": "jane"}]
        result = aggregate_orders(rows, mapping)
        assert result.documents[0].customer.username == "jane"
        assert result.stats.username_from_other_field_rows == 1

    def test_inputs_not_modified(self):
        rows = [row()]
        mapping = dict(MAPPING)
        images = {"MUG-1": "http://img/mug.png"}
        aggregate_orders(rows, mapping, images)
        assert rows == [row()]
        assert mapping == MAPPING
        assert images == {"MUG-1": "http://img/mug.png"}


class TestItems:

    def test_total_weight_is_weight_times_quantity(self):
        rows = [row(qty="2", weight="1.5"), row(qty="3", weight="")]
        doc = aggregate_orders(rows, MAPPING).documents[0]
        assert doc.total_weight == pytest.approx(3.0)
        assert [item.weight for item in doc.items] == [1.5, 0.0]

    def test_total_weight_matches_items(self):
        rows = [row(qty=str(q), weight=f"{q / 10}") for q in range(1, 6)]
        doc = aggregate_orders(rows, MAPPING).documents[0]
        assert doc.total_weight == pytest.approx(sum(i.weight * i.quantity for i in doc.items))

    @pytest.mark.parametrize("raw, expected", [("", 1), ("abc", 1), ("-2", 1), ("3 pcs", 3), ("0", 0)])
    def test_quantity_defaults(self, raw, expected):
        doc = aggregate_orders([row(qty=raw)], MAPPING).documents[0]
        assert doc.items[0].quantity == expected

    def test_unknown_defaults(self):
        mapping = {'buyerUsername': "Buyer"}
        doc = aggregate_orders([{"Buyer": "jane"}], mapping).documents[0]
        item = doc.items[0]
        assert item.name == "Unknown Product"
        assert item.order_id == "Unknown"
        assert item.quantity == 1
        assert doc.order_number == "Unknown"
        assert doc.customer.name == "Unknown"
        assert doc.customer.phone == "Unknown"

    def test_fallback_columns_when_unmapped(self):
        rows = [{
            "Order ID": "5001", "Recipient": "Carol", "Phone #": "600",
            "Product Name": "Cap", "SKU ID": "333", "Seller SKU": "CAP",
            "Quantity": "2", "Weight(kg)": "0.25",
        }]
        doc = aggregate_orders(rows, {}).documents[0]
        item = doc.items[0]
        assert doc.order_number == "5001"
        assert doc.customer.name == "Carol"
        assert doc.customer.phone == "600"
        assert (item.name, item.sku, item.seller_sku, item.quantity) == ("Cap", "333", "CAP", 2)
        assert doc.total_weight == pytest.approx(0.5)

    def test_image_by_sku_then_seller_sku(self):
        mapping = dict(MAPPING, sellerSku="Seller")
        rows = [
            dict(row(sku="A1"), Seller="S1"),
            dict(row(sku="B1"), Seller="S2"),
            dict(row(sku="C1"), Seller="S3"),
        ]
        images = {"A1": "a.png", "S1": "s1.png", "S2": "s2.png"}
        items = aggregate_orders(rows, mapping, images).documents[0].items
        assert [item.image_url for item in items] == ["a.png", "s2.png", None]


class TestAddress:

    def test_parts_joined(self):
        mapping = normalize_mapping({'addressLine1': "A1", 'city': "City", 'postalCode': "Zip"})
        r = {"A1": "1 Main St", "City": "Springfield", "Zip": ""}
        assert build_address(r, mapping) == "1 Main St, Springfield"

    def test_shipping_information_column(self):
        mapping = normalize_mapping({'city': "City"})
        r = {"Shipping Information": "1 Main St, Springfield", "City": "Springfield"}
        assert build_address(r, mapping) == "1 Main St, Springfield"

    def test_shipping_information_ignored_when_address_mapped(self):
        mapping = normalize_mapping({'addressLine1': "A1"})
        r = {"A1": "2 Elm Rd", "Shipping Information": "elsewhere"}
        assert build_address(r, mapping) == "2 Elm Rd"

    def test_empty(self):
        assert build_address({}, normalize_mapping({})) == ""


class TestParseQuantity:

    def test_values(self):
        assert parse_quantity("4") == 4
        assert parse_quantity(" 7 boxes") == 7
        assert parse_quantity(2.9) == 2
        assert parse_quantity("x") is None
        assert parse_quantity("-1") is None
        assert parse_quantity(None) is None
        assert parse_quantity(float('nan')) is None


class TestStatsAndErrors:

    def test_empty_input(self):
        with pytest.raises(EmptyInputError, match="The CSV file is empty"):
            aggregate_orders([], MAPPING)

    def test_all_rows_failing(self):
        with pytest.raises(NoValidOrdersError) as exc_info:
            aggregate_orders([None, None, None], MAPPING)

        counters = exc_info.value.get_counters()
        assert counters['total_rows'] == 3
        assert counters['skipped_rows'] == 3
        assert counters['processed_rows'] == 0
        assert "Skipped rows: 3" in exc_info.value.get_display_message()

    def test_bad_row_skipped_rest_processed(self):
        result = aggregate_orders([row(), None, row(buyer="bob")], MAPPING)
        assert len(result.documents) == 2
        assert result.stats.skipped_rows == 1
        assert result.stats.processed_rows == 2

    def test_mapping_issue_rows_counted(self):
        mapping = dict(MAPPING, phoneNumber="Phone")
        result = aggregate_orders([row(), row()], mapping)
        assert result.stats.mapping_issue_rows == 2
        assert result.stats.processed_rows == 2

    def test_failed_row_not_counted_as_synthesized(self, monkeypatch):
        import order_aggregator

        real_build_item = order_aggregator._build_item

        def build_item(row, mapping, sku_images, row_index):
            if row_index == 1:
                raise ValueError("broken row")
            return real_build_item(row, mapping, sku_images, row_index)

        monkeypatch.setattr(order_aggregator, '_build_item', build_item)
        mapping = dict(MAPPING, phoneNumber="Phone")
        result = aggregate_orders([row(), row(buyer="", order_id="9")], mapping)

        stats = result.stats
        assert stats.skipped_rows == 1
        assert stats.processed_rows == 1
        assert stats.synthesized_identity_rows == 0
        assert stats.mapping_issue_rows == 1

    def test_counters_add_up(self):
        result = aggregate_orders([row(), None, row(buyer="")], MAPPING)
        stats = result.stats
        assert stats.processed_rows + stats.skipped_rows == stats.total_rows == 3

    def test_stats_as_dict(self):
        assert AggregationStats(total_rows=1).as_dict()['total_rows'] == 1
