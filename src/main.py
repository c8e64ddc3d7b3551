"""
Command line interface of the Packing Slip Generator.

Usage:
    python src/main.py process orders.csv --pdf slips.pdf --shipping-csv out/
    python src/main.py images import sku_images.xlsx
    python src/main.py mappings save by-recipient --map buyerUsername="Recipient Name"
    python src/main.py templates import compact.html --name Compact --css compact.css
    python src/main.py data clear
"""

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional

from app_config import AppConfig, DEFAULT_CONFIG_PATH
from exceptions import PackingSlipError, TemplateError
from field_mapping import FIELD_IDS, FIELD_LABELS, mapped_fields
from local_store import LocalStore
from logger import configure_logging, get_logger
from mapping_store import ColumnMappingStore
from shipping_export import default_filename
from sku_image_store import SkuImageStore
from slip_processor import SlipProcessor
from template_renderer import DEFAULT_TEMPLATE, Template, TemplateStore

logger = get_logger(__name__)


def parse_field_overrides(values: Optional[List[str]]) -> Dict[str, str]:
    """
    Parse --map FIELD=HEADER arguments.

    Raises:
        argparse.ArgumentTypeError: On a malformed entry or unknown field
    """
    overrides = {}
    for value in values or []:
        field_id, sep, header = value.partition('=')
        field_id = field_id.strip()
        if not sep or not header.strip():
            raise argparse.ArgumentTypeError(f"Expected FIELD=HEADER, got: {value}")
        if field_id not in FIELD_IDS:
            raise argparse.ArgumentTypeError(
                f"Unknown field '{field_id}'. Known fields: {', '.join(FIELD_IDS)}"
            )
        overrides[field_id] = header.strip()
    return overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='packing-slips',
        description="Generate packing slips from marketplace order exports.",
    )
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH, help="Path to config.ini")
    commands = parser.add_subparsers(dest='command', required=True)

    process = commands.add_parser('process', help="Turn an order export into packing slips")
    process.add_argument('file', help="Order export (.csv)")
    process.add_argument('--mapping', help="Saved column mapping to start from")
    process.add_argument('--map', action='append', metavar='FIELD=HEADER', dest='overrides',
                         help="Map a field to a column (repeatable)")
    process.add_argument('--json', metavar='OUT', help="Save packing slips as JSON")
    process.add_argument('--pdf', metavar='OUT', help="Save packing slips as PDF")
    process.add_argument('--html', metavar='OUT', help="Save packing slips as printable HTML")
    process.add_argument('--shipping-csv', metavar='OUT',
                         help="Save the carrier import CSV (file or directory)")
    process.add_argument('--template', help="HTML template name")
    process.add_argument('--save-default', action='store_true',
                         help="Remember the column mapping used as the default")
    process.add_argument('--save-mapping', metavar='NAME',
                         help="Save the column mapping used under a name")

    images = commands.add_parser('images', help="Manage SKU images")
    image_commands = images.add_subparsers(dest='images_command', required=True)
    image_import = image_commands.add_parser('import', help="Replace SKU images from a CSV/Excel file")
    image_import.add_argument('file')
    image_import.add_argument('--sku-column')
    image_import.add_argument('--image-column')
    image_list = image_commands.add_parser('list', help="List SKU images")
    image_list.add_argument('--search', default='', help="Only SKUs containing this text")
    image_commands.add_parser('clear', help="Delete all SKU images")

    mappings = commands.add_parser('mappings', help="Manage saved column mappings")
    mapping_commands = mappings.add_subparsers(dest='mappings_command', required=True)
    mapping_commands.add_parser('list', help="List saved mappings")
    mapping_show = mapping_commands.add_parser('show', help="Show a saved mapping")
    mapping_show.add_argument('name')
    mapping_delete = mapping_commands.add_parser('delete', help="Delete a saved mapping")
    mapping_delete.add_argument('name')
    mapping_save = mapping_commands.add_parser('save', help="Save a named mapping from FIELD=HEADER pairs")
    mapping_save.add_argument('name')
    mapping_save.add_argument('--map', action='append', metavar='FIELD=HEADER', dest='overrides',
                              required=True, help="Map a field to a column (repeatable)")

    templates = commands.add_parser('templates', help="Manage HTML templates")
    template_commands = templates.add_subparsers(dest='templates_command', required=True)
    template_import = template_commands.add_parser('import', help="Add or replace a template from an HTML file")
    template_import.add_argument('file')
    template_import.add_argument('--name', required=True)
    template_import.add_argument('--css', metavar='FILE', help="Stylesheet for the template")
    template_import.add_argument('--default', action='store_true', help="Make it the default template")
    template_commands.add_parser('list', help="List templates")
    template_delete = template_commands.add_parser('delete', help="Delete a template")
    template_delete.add_argument('name')
    template_default = template_commands.add_parser('default', help="Set the default template")
    template_default.add_argument('name')

    data = commands.add_parser('data', help="Manage locally stored data")
    data_commands = data.add_subparsers(dest='data_command', required=True)
    data_commands.add_parser('clear', help="Delete all saved mappings, images and templates")

    return parser


def _shipping_csv_path(target: str, config: AppConfig) -> Path:
    path = Path(target)
    if path.is_dir():
        return path / default_filename(config.csv_filename_prefix)
    return path


def run_process(args, config: AppConfig) -> int:
    processor = SlipProcessor(config)
    overrides = parse_field_overrides(args.overrides)
    result = processor.process_file(args.file, args.mapping, overrides, args.save_default)
    if args.save_mapping:
        processor.mapping_store.save(args.save_mapping, processor.field_mapping)
        print(f"Saved column mapping '{args.save_mapping}'")

    stats = result.stats
    print(f"Created {len(result.documents)} packing slips from {stats.processed_rows} of "
          f"{stats.total_rows} rows")
    if stats.skipped_rows:
        print(f"  {stats.skipped_rows} rows skipped (see log for details)")
    if stats.synthesized_identity_rows:
        print(f"  {stats.synthesized_identity_rows} rows without a username were grouped by "
              f"order ID or recipient")

    if args.json:
        print(f"JSON: {processor.export_json(args.json)}")
    if args.html:
        print(f"HTML: {processor.export_html(args.html, args.template)}")
    if args.pdf:
        print(f"PDF: {processor.export_pdf(args.pdf)}")
    if args.shipping_csv:
        print(f"Shipping CSV: {processor.export_shipping_csv(_shipping_csv_path(args.shipping_csv, config))}")
    return 0


def run_images(args, store: LocalStore) -> int:
    images = SkuImageStore(store)
    if args.images_command == 'import':
        count = images.import_from_file(args.file, args.sku_column, args.image_column)
        print(f"Imported {count} SKU images")
    elif args.images_command == 'list':
        entries = images.search(args.search) if args.search else images.images
        for entry in entries:
            print(f"{entry['sku']}\t{entry['imageUrl']}")
        print(f"{len(entries)} SKU images")
    elif args.images_command == 'clear':
        images.clear()
        print("All SKU images deleted")
    return 0


def run_mappings(args, store: LocalStore) -> int:
    mappings = ColumnMappingStore(store)
    if args.mappings_command == 'list':
        for name in mappings.list_names():
            print(name)
    elif args.mappings_command == 'show':
        mapping = mappings.load(args.name)
        if mapping is None:
            print(f"No saved mapping named '{args.name}'", file=sys.stderr)
            return 1
        for field_id, header in mapped_fields(mapping).items():
            print(f"{FIELD_LABELS[field_id]}: {header}")
    elif args.mappings_command == 'delete':
        if not mappings.delete(args.name):
            print(f"No saved mapping named '{args.name}'", file=sys.stderr)
            return 1
        print(f"Deleted mapping '{args.name}'")
    elif args.mappings_command == 'save':
        overrides = parse_field_overrides(args.overrides)
        try:
            mappings.save(args.name, overrides)
        except ValueError as e:
            print(str(e), file=sys.stderr)
            return 1
        print(f"Saved mapping '{args.name}' with {len(overrides)} column(s)")
    return 0


def _read_text(path: str) -> str:
    try:
        return Path(path).read_text(encoding='utf-8')
    except OSError as e:
        raise TemplateError(f"Could not read {path}: {e}")


def run_templates(args, store: LocalStore) -> int:
    templates = TemplateStore(store)
    if args.templates_command == 'import':
        css = _read_text(args.css) if args.css else ''
        template = templates.save(Template(args.name, _read_text(args.file), css))
        print(f"Saved template '{template.name}' ({len(template.variables)} variables)")
        if args.default:
            templates.set_default(template.name)
            print(f"'{template.name}' is now the default template")
    elif args.templates_command == 'list':
        default_name = templates.get_default().name
        names = [t.name for t in templates.list()]
        if DEFAULT_TEMPLATE.name not in names:
            names.insert(0, DEFAULT_TEMPLATE.name)
        for name in names:
            print(f"{name} (default)" if name == default_name else name)
    elif args.templates_command == 'delete':
        if not templates.delete(args.name):
            print(f"No saved template named '{args.name}'", file=sys.stderr)
            return 1
        print(f"Deleted template '{args.name}'")
    elif args.templates_command == 'default':
        templates.set_default(args.name)
        print(f"'{args.name}' is now the default template")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.config)
    config = AppConfig(args.config)

    try:
        if args.command == 'process':
            return run_process(args, config)

        store = LocalStore(config.data_dir)
        if args.command == 'images':
            return run_images(args, store)
        if args.command == 'mappings':
            return run_mappings(args, store)
        if args.command == 'templates':
            return run_templates(args, store)
        if args.command == 'data':
            removed = store.clear()
            print(f"Deleted {removed} stored item(s)")
            return 0
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except PackingSlipError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e.get_display_message()}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
