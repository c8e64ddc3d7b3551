"""
Custom exceptions for the Packing Slip Generator.

This module defines application-specific exceptions so that callers (the CLI,
or any UI built on top of the pipeline) can tell fatal import problems apart
from ordinary system errors and show a helpful message.

Only a handful of conditions are fatal. A malformed row, an unparsable weight
or a missing quantity never raise: the aggregation pipeline absorbs them and
reports them through diagnostic counters instead.

Exception hierarchy:
    PackingSlipError (base)
    ├── AggregationError (order grouping failed as a whole)
    │   ├── EmptyInputError (no rows supplied)
    │   └── NoValidOrdersError (rows supplied, no packing slips produced)
    ├── CsvParseError (order export could not be read)
    ├── StorageError (local data store could not be written)
    ├── TemplateError (template missing or invalid)
    └── ExportError (PDF / CSV / JSON export failed)
"""

from typing import Any, Dict, Optional


class PackingSlipError(Exception):
    """
    Base exception for all Packing Slip Generator errors.

    All application-specific exceptions inherit from this class, so a caller
    can handle every expected failure with a single except clause:
        try:
            processor.process_file(path)
        except PackingSlipError as e:
            print(e.get_display_message())
    """

    def get_display_message(self) -> str:
        """Return a message suitable for showing to the user."""
        return str(self)


class AggregationError(PackingSlipError):
    """Raised when a batch of rows cannot be turned into packing slips."""


class EmptyInputError(AggregationError):
    """
    Raised when aggregation is called with zero rows.

    Usually means the export only contained a header line, or every line was
    blank. No partial result is produced.
    """


class NoValidOrdersError(AggregationError):
    """
    Raised when rows were processed but no packing slip could be produced.

    The exception carries the diagnostic counters collected during the pass
    so the caller can explain *why* nothing came out (every row failed, the
    mapping points at columns that do not exist, ...).

    Attributes:
        stats: The AggregationStats of the failed pass (or None)
    """

    def __init__(self, message: str, stats: Optional[Any] = None):
        """
        Initialize NoValidOrdersError with diagnostic counters.

        Args:
            message: Brief error message
            stats: AggregationStats instance describing the pass. Anything
                   with an ``as_dict()`` method is accepted.
        """
        super().__init__(message)
        self.stats = stats

    def get_counters(self) -> Dict[str, int]:
        """Return the diagnostic counters as a plain dictionary."""
        if self.stats is None:
            return {}
        return self.stats.as_dict()

    def get_display_message(self) -> str:
        """
        Format the error together with its counters.

        Example output:
            No valid orders found in the CSV. Please check your column mappings
            and ensure the CSV contains valid order data.

            Details:
            Total rows: 3
            Processed rows: 0
            Skipped rows: 3
            ...
        """
        counters = self.get_counters()
        if not counters:
            return str(self)

        labels = {
            'total_rows': 'Total rows',
            'processed_rows': 'Processed rows',
            'skipped_rows': 'Skipped rows',
            'synthesized_identity_rows': 'Rows with synthesized username',
            'username_from_other_field_rows': 'Usernames found in other fields',
            'mapping_issue_rows': 'Rows with invalid mapping',
        }
        details = "\n".join(
            f"{labels.get(key, key)}: {value}" for key, value in counters.items()
        )
        return f"{self}\n\nDetails:\n{details}"


class CsvParseError(PackingSlipError):
    """
    Raised when an order export cannot be read.

    Common causes:
    - File does not exist or is not readable
    - File is not valid CSV (broken quoting, binary content)
    - File contains a header line but no data
    """


class StorageError(PackingSlipError):
    """
    Raised when the local data store cannot be written.

    Reads never raise: a missing or corrupt stored value degrades to the
    default, like an empty browser storage would.
    """


class TemplateError(PackingSlipError):
    """Raised when a template cannot be found or rendered."""


class ExportError(PackingSlipError):
    """Raised when packing slips cannot be exported to PDF, CSV or JSON."""
