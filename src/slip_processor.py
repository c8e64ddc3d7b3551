"""
End-to-end processing of one order export.

SlipProcessor ties the pipeline together: read the CSV, work out the column
mapping (saved mapping, user overrides, auto-detection), aggregate the rows
into packing slips and export them. It keeps the state of the current batch
so several exports can be produced from one import.
"""

from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from app_config import AppConfig
from column_resolver import detect_marketplace, resolve_column_mapping
from csv_loader import CsvData, load_rows_from_file
from exceptions import ExportError, PackingSlipError
from field_mapping import (
    FIELD_LABELS, FieldMapping, empty_mapping, find_missing_columns, find_unmapped_recommended,
    normalize_mapping,
)
from local_store import LocalStore
from logger import get_logger, set_batch_context, set_source_context
from mapping_store import ColumnMappingStore
from order_aggregator import AggregationResult, aggregate_orders
from packing_slip import PackingSlipDocument, save_documents_json
from pdf_generator import generate_pdf
from shipping_export import export_shipping_csv
from sku_image_store import SkuImageStore
from template_renderer import TemplateStore, render_document

logger = get_logger(__name__)


class SlipProcessor:
    """
    Runs an order export through the packing slip pipeline.

    Attributes:
        config (AppConfig): Application settings
        store (LocalStore): Local data store for mappings, images and templates
        mapping_store (ColumnMappingStore): Saved column mappings
        image_store (SkuImageStore): SKU image lookup
        template_store (TemplateStore): HTML templates
        csv_data (CsvData | None): Rows of the loaded export
        source_path (Path | None): File the rows came from
        marketplace (str | None): Marketplace detected from the headers
        field_mapping (FieldMapping | None): Mapping used for the last run
        result (AggregationResult | None): Outcome of the last run
    """

    def __init__(self, config: Optional[AppConfig] = None, store: Optional[LocalStore] = None):
        self.config = config or AppConfig()
        self.store = store or LocalStore(self.config.data_dir)
        self.mapping_store = ColumnMappingStore(self.store)
        self.image_store = SkuImageStore(self.store)
        self.template_store = TemplateStore(self.store)

        self.csv_data: Optional[CsvData] = None
        self.source_path: Optional[Path] = None
        self.marketplace: Optional[str] = None
        self.field_mapping: Optional[FieldMapping] = None
        self.result: Optional[AggregationResult] = None

    @property
    def documents(self) -> List[PackingSlipDocument]:
        return self.result.documents if self.result else []

    def load_file(self, file_path: Union[str, Path]) -> CsvData:
        """
        Read an order export and start a new batch.

        Raises:
            CsvParseError: If the file cannot be read
        """
        self.source_path = Path(file_path)
        set_batch_context(datetime.now().strftime('%Y%m%d-%H%M%S'))
        set_source_context(self.source_path.name)

        self.csv_data = load_rows_from_file(
            self.source_path,
            delimiter=self.config.import_delimiter,
            encoding=self.config.import_encoding,
        )
        self.marketplace = detect_marketplace(self.csv_data.headers)
        self.field_mapping = None
        self.result = None
        return self.csv_data

    def _require_data(self) -> CsvData:
        if self.csv_data is None:
            raise PackingSlipError("No order file loaded")
        return self.csv_data

    def _saved_mapping(self, mapping_name: Optional[str]) -> FieldMapping:
        if mapping_name:
            saved = self.mapping_store.load(mapping_name)
            if saved is None:
                raise PackingSlipError(f"Saved column mapping not found: {mapping_name}")
            logger.info(f"Using saved column mapping '{mapping_name}'")
            return saved

        saved = self.mapping_store.load_default()
        if saved is None:
            return empty_mapping()
        logger.info("Using default column mapping")
        return saved

    def build_mapping(self, mapping_name: Optional[str] = None,
                      overrides: Optional[Mapping[str, Optional[str]]] = None) -> FieldMapping:
        """
        Work out the column mapping for the loaded file.

        A saved mapping (the named one, or the default) is the starting point;
        its entries for columns this file does not have are dropped so they
        can be auto-detected. Overrides are applied on top and always kept.
        Remaining fields are auto-detected from the headers.

        Raises:
            PackingSlipError: If no file is loaded or the named mapping does not exist
        """
        headers = self._require_data().headers
        mapping = self._saved_mapping(mapping_name)

        stale = find_missing_columns(mapping, headers)
        for field_id in stale:
            logger.warning(
                f"Saved mapping column '{mapping[field_id]}' for {FIELD_LABELS[field_id]} "
                f"is not in this file, detecting it instead"
            )
            mapping[field_id] = None

        if overrides:
            for field_id, header in normalize_mapping(overrides).items():
                if header:
                    mapping[field_id] = header
            missing = find_missing_columns(mapping, headers)
            if missing:
                logger.warning(f"Mapped columns not found in file: {', '.join(mapping[f] for f in missing)}")

        mapping = resolve_column_mapping(headers, mapping, self.marketplace)

        unmapped = find_unmapped_recommended(mapping)
        if unmapped:
            logger.warning(
                f"Recommended fields not mapped: {', '.join(FIELD_LABELS[f] for f in unmapped)}"
            )

        self.field_mapping = mapping
        return mapping

    def process(self, mapping: Optional[Mapping[str, Optional[str]]] = None) -> AggregationResult:
        """
        Aggregate the loaded rows into packing slips.

        Args:
            mapping: Column mapping to use; built with build_mapping() if None

        Raises:
            EmptyInputError, NoValidOrdersError: If no packing slips can be produced
        """
        data = self._require_data()
        if mapping is None:
            mapping = self.field_mapping or self.build_mapping()
        self.field_mapping = normalize_mapping(mapping)

        self.result = aggregate_orders(data.rows, self.field_mapping, self.image_store.get_map())
        logger.info(
            f"Aggregated {self.result.stats.processed_rows} rows into "
            f"{len(self.result.documents)} packing slips"
        )
        return self.result

    def process_file(self, file_path: Union[str, Path], mapping_name: Optional[str] = None,
                     overrides: Optional[Mapping[str, Optional[str]]] = None,
                     save_default: bool = False) -> AggregationResult:
        """
        Load, map and aggregate an order export in one go.

        Args:
            file_path: Order export (.csv)
            mapping_name: Saved mapping to start from (default mapping if None)
            overrides: field id -> header entries that take precedence
            save_default: Store the mapping used as the default after success

        Raises:
            PackingSlipError: On any fatal import problem
        """
        self.load_file(file_path)
        mapping = self.build_mapping(mapping_name, overrides)
        result = self.process(mapping)
        if save_default:
            self.mapping_store.save_default(mapping)
        return result

    def _require_documents(self) -> List[PackingSlipDocument]:
        if not self.documents:
            raise ExportError("No packing slips to export, process an order file first")
        return self.documents

    def export_json(self, output_path: Union[str, Path]) -> Path:
        path = save_documents_json(self._require_documents(), output_path)
        logger.info(f"Packing slips saved to {path}")
        return path

    def export_html(self, output_path: Union[str, Path], template_name: Optional[str] = None,
                    slip_date: Optional[date] = None) -> Path:
        """
        Render the packing slips with a template into one printable HTML file.

        The template is the named one, else the configured default, else the
        stored default.

        Raises:
            TemplateError: If the named template does not exist
            ExportError: If the file cannot be written
        """
        documents = self._require_documents()
        template = self.template_store.resolve(template_name or self.config.default_template)
        output_path = Path(output_path)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(render_document(template, documents, slip_date), encoding='utf-8')
        except OSError as e:
            logger.error(f"Failed to write HTML: {e}", exc_info=True)
            raise ExportError(f"Failed to write HTML: {e}")
        logger.info(f"HTML packing slips saved to {output_path} (template '{template.name}')")
        return output_path

    def export_pdf(self, output_path: Union[str, Path], slip_date: Optional[date] = None) -> Path:
        return generate_pdf(
            self._require_documents(),
            output_path,
            slip_date=slip_date,
            dpi=self.config.page_dpi,
            logo_path=self.config.logo_path,
        )

    def export_shipping_csv(self, output_path: Union[str, Path]) -> Path:
        data = self._require_data()
        return export_shipping_csv(data.rows, data.headers, self.field_mapping or {}, output_path)

    def get_summary(self) -> Dict[str, int]:
        """Totals of the last run, for reporting."""
        documents = self.documents
        summary = {
            'packing_slips': len(documents),
            'total_items': sum(doc.total_items for doc in documents),
            'total_products': sum(doc.total_products for doc in documents),
        }
        if self.result:
            summary.update(self.result.stats.as_dict())
        return summary
