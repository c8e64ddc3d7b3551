"""Tests for csv_loader: reading order exports into text rows."""

import pytest

from csv_loader import load_rows_from_file, load_rows_from_text
from exceptions import CsvParseError


class TestLoadRowsFromText:

    def test_headers_and_rows(self):
        data = load_rows_from_text("Order ID,Qty\n1001,2\n1002,1\n")
        assert data.headers == ["Order ID", "Qty"]
        assert data.rows == [{"Order ID": "1001", "Qty": "2"}, {"Order ID": "1002", "Qty": "1"}]

    def test_values_kept_as_text(self):
        data = load_rows_from_text("Order ID,SKU,Weight\n000123,1E5,0.50\n")
        assert data.rows[0] == {"Order ID": "000123", "SKU": "1E5", "Weight": "0.50"}

    def test_blank_cells_are_none(self):
        data = load_rows_from_text("A,B\n1,\n")
        assert data.rows[0] == {"A": "1", "B": None}

    def test_na_like_text_not_converted(self):
        data = load_rows_from_text("Name,Country\nNA,NA\n")
        assert data.rows[0] == {"Name": "NA", "Country": "NA"}

    def test_quoted_commas(self):
        data = load_rows_from_text('Name,Weight\n"Doe, Jane","1,5 kg"\n')
        assert data.rows[0] == {"Name": "Doe, Jane", "Weight": "1,5 kg"}

    def test_header_whitespace_stripped(self):
        data = load_rows_from_text(" Order ID , Qty \n1,2\n")
        assert data.headers == ["Order ID", "Qty"]

    def test_duplicate_headers_disambiguated(self):
        data = load_rows_from_text("Name,Name\nA,B\n")
        assert len(set(data.headers)) == 2
        assert data.rows[0][data.headers[0]] == "A"
        assert data.rows[0][data.headers[1]] == "B"

    def test_blank_lines_dropped(self):
        data = load_rows_from_text("A,B\n1,2\n\n,\n3,4\n")
        assert [row["A"] for row in data.rows] == ["1", "3"]

    def test_bom_stripped(self):
        data = load_rows_from_text("\ufeffOrder ID,Qty\n1,2\n")
        assert data.headers[0] == "Order ID"

    def test_semicolon_delimiter(self):
        data = load_rows_from_text("A;B\n1;2\n", delimiter=';')
        assert data.rows == [{"A": "1", "B": "2"}]

    def test_empty_text(self):
        with pytest.raises(CsvParseError):
            load_rows_from_text("   ")

    def test_header_only(self):
        data = load_rows_from_text("A,B\n")
        assert data.headers == ["A", "B"]
        assert data.rows == []


class TestLoadRowsFromFile:

    def test_reads_file(self, generic_csv_file):
        data = load_rows_from_file(generic_csv_file)
        assert len(data.rows) == 3
        assert data.headers[0] == "OrderID"
        assert data.rows[1]["Weight"] == "1,9"

    def test_utf8_bom_file(self, tmp_path):
        path = tmp_path / "bom.csv"
        path.write_text("Recipient,City\nJosé,Móstoles\n", encoding='utf-8-sig')
        data = load_rows_from_file(path)
        assert data.headers == ["Recipient", "City"]
        assert data.rows[0]["City"] == "Móstoles"

    def test_missing_file(self, tmp_path):
        with pytest.raises(CsvParseError, match="does not exist"):
            load_rows_from_file(tmp_path / "nope.csv")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("", encoding='utf-8')
        with pytest.raises(CsvParseError, match="empty"):
            load_rows_from_file(path)

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "latin1.csv"
        path.write_bytes("Name\nJos\xe9\n".encode('latin-1'))
        with pytest.raises(CsvParseError):
            load_rows_from_file(path)

    def test_custom_encoding(self, tmp_path):
        path = tmp_path / "latin1.csv"
        path.write_bytes("Name\nJos\xe9\n".encode('latin-1'))
        data = load_rows_from_file(path, encoding='latin-1')
        assert data.rows[0]["Name"] == "José"
