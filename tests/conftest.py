"""
Pytest configuration file for Packing Slip Generator tests.

This file sets up the Python path so tests can import the flat modules in
'src', and provides shared fixtures for order exports and local storage.
"""

import sys
from pathlib import Path

import pytest

# Get the repository root directory (parent of tests directory)
repo_root = Path(__file__).parent.parent

# Add src directory to sys.path (for src modules)
src_dir = repo_root / 'src'
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))


GENERIC_CSV = (
    "OrderID,Buyer,Recipient Name,Phone,Address,City,Product,SKU,Qty,Weight\n"
    "1001,alice,Alice Smith,555-0100,1 Main St,Springfield,Mug,MUG-1,2,0.5 kg\n"
    "1002,Alice,Alice Smith,555-0100,1 Main St,Springfield,Plate,PLT-1,1,\"1,9\"\n"
    "1003,bob,Bob Jones,555-0200,9 Elm Rd,Shelbyville,Cup,CUP-1,3,0.2\n"
)

TIKTOK_HEADERS = [
    "Order ID", "Order Status", "SKU ID", "Seller SKU", "Product Name", "Quantity",
    "Buyer Username", "Recipient", "Phone #", "Country", "Province", "City",
    "Zipcode", "Detail Address", "Additional address information", "Weight(kg)",
    "Email",
]


def make_tiktok_csv(rows):
    """Build a TikTok Shop style export from a list of dicts keyed by header."""
    lines = [",".join(TIKTOK_HEADERS)]
    for row in rows:
        lines.append(",".join(str(row.get(header, '')) for header in TIKTOK_HEADERS))
    return "\n".join(lines) + "\n"


@pytest.fixture
def generic_csv_file(tmp_path):
    path = tmp_path / "orders.csv"
    path.write_text(GENERIC_CSV, encoding='utf-8')
    return path


@pytest.fixture
def tiktok_csv_file(tmp_path):
    path = tmp_path / "tiktok_orders.csv"
    path.write_text(make_tiktok_csv([
        {"Order ID": "5001", "SKU ID": "111", "Seller SKU": "TS-RED", "Product Name": "T-Shirt Red",
         "Quantity": "2", "Buyer Username": "carol", "Recipient": "Carol White", "Phone #": "600111222",
         "Country": "Spain", "Province": "Madrid", "City": "Madrid", "Zipcode": "28001",
         "Detail Address": "Calle Mayor 1", "Weight(kg)": "0.3", "Email": "carol@example.com"},
        {"Order ID": "5002", "SKU ID": "222", "Seller SKU": "TS-BLU", "Product Name": "T-Shirt Blue",
         "Quantity": "1", "Buyer Username": "carol", "Recipient": "Carol White", "Phone #": "600111222",
         "Country": "Spain", "Province": "Madrid", "City": "Madrid", "Zipcode": "28001",
         "Detail Address": "Calle Mayor 1", "Weight(kg)": "0.3"},
        {"Order ID": "5003", "SKU ID": "333", "Seller SKU": "CAP", "Product Name": "Cap",
         "Quantity": "1", "Buyer Username": "dave", "Recipient": "Dave Black", "Phone #": "600333444",
         "Country": "Spain", "Province": "Valencia", "City": "Valencia", "Zipcode": "46001",
         "Detail Address": "Av. del Puerto 5", "Weight(kg)": "0.1"},
    ]), encoding='utf-8')
    return path


@pytest.fixture
def store(tmp_path):
    from local_store import LocalStore
    return LocalStore(tmp_path / "data")


@pytest.fixture
def app_config(tmp_path):
    """AppConfig pointing its data directory at a temp folder."""
    from app_config import AppConfig

    config_path = tmp_path / "config.ini"
    config_path.write_text(
        "[Paths]\n"
        f"DataDir = {tmp_path / 'data'}\n"
        "\n[Export]\n"
        "PageDPI = 50\n"
        "\n[Logging]\n"
        f"LogDir = {tmp_path / 'logs'}\n",
        encoding='utf-8'
    )
    return AppConfig(config_path)
