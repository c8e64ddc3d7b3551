"""
CSV row source: reads an order export into ordered header -> value rows.

Files are read with pandas, every cell as text, so that order IDs like
"000123" or SKUs like "1E5" survive untouched. Header names are stripped of
surrounding whitespace and fully blank lines are dropped.
"""

import csv
import io
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Union

import pandas as pd

from exceptions import CsvParseError
from logger import get_logger

logger = get_logger(__name__)

Row = Dict[str, Optional[str]]

DEFAULT_ENCODING = 'utf-8-sig'
DEFAULT_DELIMITER = ','

# Delimiter value asking pandas to sniff the separator from the content
AUTO_DELIMITER = 'auto'


class CsvData(NamedTuple):
    """Headers (file order) and data rows of one order export."""
    headers: List[str]
    rows: List[Row]


def _unique_headers(headers: List[str]) -> List[str]:
    """Strip header names and disambiguate duplicates ("Name", "Name_1", ...)."""
    seen: Dict[str, int] = {}
    result = []
    for header in headers:
        name = str(header).strip()
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 0
        result.append(name)
    return result


def dataframe_to_rows(df: pd.DataFrame) -> CsvData:
    """
    Convert a DataFrame of text cells into CsvData.

    Blank cells become None; rows where every cell is blank are dropped.
    """
    headers = _unique_headers(list(df.columns))
    df = df.copy()
    df.columns = headers

    rows: List[Row] = []
    for record in df.to_dict('records'):
        row: Row = {}
        for header in headers:
            value = record.get(header)
            if value is None or (isinstance(value, float) and pd.isna(value)):
                row[header] = None
            else:
                row[header] = str(value)
        if any(value is not None and value.strip() for value in row.values()):
            rows.append(row)

    return CsvData(headers=headers, rows=rows)


def _read_csv(source, delimiter: Optional[str], encoding: str) -> pd.DataFrame:
    return pd.read_csv(
        source,
        dtype=str,
        keep_default_na=False,
        na_values=[''],
        sep=None if delimiter == AUTO_DELIMITER else (delimiter or DEFAULT_DELIMITER),
        engine='python',
        skip_blank_lines=True,
        encoding=encoding,
    )


def load_rows_from_text(text: str, delimiter: Optional[str] = None) -> CsvData:
    """
    Parse CSV text into rows.

    Args:
        text: Full CSV content, header line first
        delimiter: Field separator (default ","); "auto" sniffs it from the content

    Returns:
        CsvData with headers and rows

    Raises:
        CsvParseError: If the text is not valid CSV or has no header line
    """
    if not text or not text.strip():
        raise CsvParseError("The CSV file is empty")

    try:
        df = _read_csv(io.StringIO(text.lstrip('\ufeff')), delimiter, DEFAULT_ENCODING)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, csv.Error, ValueError) as e:
        logger.error(f"CSV parsing error: {e}")
        raise CsvParseError(f"CSV parsing error: {e}")

    data = dataframe_to_rows(df)
    logger.debug(f"Parsed {len(data.rows)} rows, {len(data.headers)} columns")
    return data


def load_rows_from_file(file_path: Union[str, Path], delimiter: Optional[str] = None,
                        encoding: str = DEFAULT_ENCODING) -> CsvData:
    """
    Read an order export file into rows.

    Args:
        file_path: Path to the .csv file
        delimiter: Field separator (default ","); "auto" sniffs it from the content
        encoding: Text encoding (default tolerates a UTF-8 BOM)

    Returns:
        CsvData with headers and rows

    Raises:
        CsvParseError: If the file cannot be read or parsed
    """
    logger.info(f"Loading order export from: {file_path}")

    path = Path(file_path)
    if not path.exists():
        logger.error(f"Order export not found: {path}")
        raise CsvParseError(f"Could not read the CSV file: {path} does not exist")

    try:
        df = _read_csv(path, delimiter, encoding)
    except pd.errors.EmptyDataError:
        logger.error(f"Order export is empty: {path}")
        raise CsvParseError("The CSV file is empty")
    except (pd.errors.ParserError, csv.Error, UnicodeDecodeError, ValueError, OSError) as e:
        logger.error(f"Failed to read CSV file: {e}")
        raise CsvParseError(f"Could not read the CSV file: {e}")

    data = dataframe_to_rows(df)
    logger.info(f"Order export loaded: {len(data.rows)} rows, {len(data.headers)} columns")
    logger.debug(f"Available columns: {data.headers}")
    return data
