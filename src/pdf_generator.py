"""
Printable PDF packing slips.

Each packing slip is drawn as one A4 page image with Pillow and the pages are
saved together as a multi-page PDF. The order number is printed as a Code-128
barcode so the slip can be scanned at the packing station.
"""

import io
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence, Union

import barcode
from barcode.errors import BarcodeError
from barcode.writer import ImageWriter
from PIL import Image, ImageDraw, ImageFont

from exceptions import ExportError
from logger import get_logger
from packing_slip import PackingSlipDocument

logger = get_logger(__name__)

# A4 in millimetres
PAGE_WIDTH_MM = 210
PAGE_HEIGHT_MM = 297
MARGIN_MM = 15
DEFAULT_DPI = 150

BARCODE_HEIGHT_MM = 12
LOGO_MAX_HEIGHT_MM = 20

# Column layout of the item table, as fractions of the content width
TABLE_COLUMNS = (
    ("Product", 0.42),
    ("SKU", 0.16),
    ("Seller SKU", 0.18),
    ("Qty", 0.10),
    ("Weight", 0.14),
)

TEXT_COLOR = 'black'
MUTED_COLOR = (90, 90, 90)
RULE_COLOR = (200, 200, 200)
SUMMARY_FILL = (240, 240, 240)


def _mm_to_px(mm: float, dpi: int) -> int:
    return int(mm / 25.4 * dpi)


def _load_fonts(dpi: int):
    """Arial at sizes scaled to the DPI, or Pillow's built-in font if Arial is missing."""
    def pt(size):
        return int(size * dpi / 72)

    try:
        return {
            'title': ImageFont.truetype("arialbd.ttf", pt(18)),
            'bold': ImageFont.truetype("arialbd.ttf", pt(10)),
            'regular': ImageFont.truetype("arial.ttf", pt(10)),
            'small': ImageFont.truetype("arial.ttf", pt(8)),
        }
    except IOError:
        logger.warning("Arial font not found, using default font")
        default = ImageFont.load_default()
        return {'title': default, 'bold': default, 'regular': default, 'small': default}


def barcode_content(order_number: str) -> str:
    """
    Order number reduced to characters that scan reliably in Code-128.

    Keeps letters, digits, "-" and "_". Falls back to "UNKNOWN" when nothing
    is left.
    """
    safe = "".join(c for c in str(order_number) if c.isalnum() or c in '-_').rstrip()
    return safe or "UNKNOWN"


def render_barcode(order_number: str, height_px: int, max_width_px: int) -> Image.Image:
    """Render the order number as a Code-128 barcode image of the given height."""
    code128 = barcode.get_barcode_class('code128')
    barcode_obj = code128(barcode_content(order_number), writer=ImageWriter())

    buffer = io.BytesIO()
    barcode_obj.write(buffer, {
        'module_height': 15.0,
        'write_text': False,
        'quiet_zone': 2
    })
    buffer.seek(0)
    barcode_img = Image.open(buffer)

    aspect_ratio = barcode_img.width / barcode_img.height
    new_w = min(int(height_px * aspect_ratio), max_width_px)
    return barcode_img.resize((new_w, height_px), Image.LANCZOS)


def _text_width(draw: ImageDraw.ImageDraw, text: str, font) -> int:
    bbox = draw.textbbox((0, 0), text, font=font)
    return bbox[2] - bbox[0]


def _line_height(draw: ImageDraw.ImageDraw, font) -> int:
    bbox = draw.textbbox((0, 0), "Ag", font=font)
    return int((bbox[3] - bbox[1]) * 1.4)


def _fit(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> str:
    """Truncate text with an ellipsis so it fits in max_width pixels."""
    if _text_width(draw, text, font) <= max_width:
        return text
    while text and _text_width(draw, text + "...", font) > max_width:
        text = text[:-1]
    return text + "..."


def render_pages(document: PackingSlipDocument, slip_date: Optional[date] = None,
                dpi: int = DEFAULT_DPI, logo: Optional[Image.Image] = None) -> List[Image.Image]:
    """
    Draw one packing slip.

    Returns a list of page images: long item lists continue on extra pages
    with the table header repeated.
    """
    slip_date = slip_date or date.today()
    width = _mm_to_px(PAGE_WIDTH_MM, dpi)
    height = _mm_to_px(PAGE_HEIGHT_MM, dpi)
    margin = _mm_to_px(MARGIN_MM, dpi)
    content_width = width - 2 * margin
    fonts = _load_fonts(dpi)

    pages = []
    page = Image.new('RGB', (width, height), 'white')
    draw = ImageDraw.Draw(page)
    y = margin

    # Header: optional logo, title, order number and date on the left,
    # customer block on the right
    if logo is not None:
        logo_h = min(logo.height, _mm_to_px(LOGO_MAX_HEIGHT_MM, dpi))
        logo_w = int(logo.width * logo_h / logo.height)
        page.paste(logo.resize((logo_w, logo_h), Image.LANCZOS), (margin, y))
        y += logo_h + _mm_to_px(3, dpi)

    header_top = y
    draw.text((margin, y), "PACKING SLIP", font=fonts['title'], fill=TEXT_COLOR)
    y += _line_height(draw, fonts['title'])
    draw.text((margin, y), f"Order Number: {document.order_number}", font=fonts['regular'], fill=TEXT_COLOR)
    y += _line_height(draw, fonts['regular'])
    draw.text((margin, y), f"Date: {slip_date:%B} {slip_date.day}, {slip_date.year}",
              font=fonts['regular'], fill=TEXT_COLOR)
    y += _line_height(draw, fonts['regular'])

    customer_lines = [
        (document.customer.name, fonts['bold']),
        (document.customer.address, fonts['regular']),
        (document.customer.phone, fonts['regular']),
    ]
    customer_y = header_top
    half_width = content_width // 2
    for text, font in customer_lines:
        if not text:
            continue
        text = _fit(draw, text, font, half_width)
        draw.text((width - margin - _text_width(draw, text, font), customer_y), text,
                  font=font, fill=TEXT_COLOR)
        customer_y += _line_height(draw, font)
    y = max(y, customer_y) + _mm_to_px(3, dpi)

    barcode_img = render_barcode(document.order_number, _mm_to_px(BARCODE_HEIGHT_MM, dpi), half_width)
    page.paste(barcode_img, (margin, y))
    y += barcode_img.height + _mm_to_px(4, dpi)

    # Summary bar
    summary = (f"Items: {document.total_items}    Products: {document.total_products}    "
               f"Orders: {document.total_orders}")
    bar_height = _line_height(draw, fonts['bold']) + _mm_to_px(2, dpi)
    draw.rectangle([margin, y, width - margin, y + bar_height], fill=SUMMARY_FILL)
    draw.text((margin + _mm_to_px(2, dpi), y + _mm_to_px(1, dpi)), summary, font=fonts['bold'], fill=TEXT_COLOR)
    y += bar_height + _mm_to_px(4, dpi)

    row_height = _line_height(draw, fonts['regular'])
    column_x = []
    x = margin
    for _, fraction in TABLE_COLUMNS:
        column_x.append((x, int(content_width * fraction)))
        x += int(content_width * fraction)

    def draw_table_header(draw, y):
        for (label, _), (col_x, col_w) in zip(TABLE_COLUMNS, column_x):
            draw.text((col_x, y), label, font=fonts['bold'], fill=TEXT_COLOR)
        y += row_height
        draw.line([margin, y - 2, width - margin, y - 2], fill=TEXT_COLOR, width=1)
        return y

    y = draw_table_header(draw, y)
    footer_space = 2 * row_height + margin

    for item in document.items:
        if y + row_height > height - footer_space:
            pages.append(page)
            page = Image.new('RGB', (width, height), 'white')
            draw = ImageDraw.Draw(page)
            y = margin
            draw.text((margin, y), f"Order Number: {document.order_number} (continued)",
                      font=fonts['small'], fill=MUTED_COLOR)
            y += row_height
            y = draw_table_header(draw, y)

        cells = (
            item.name,
            item.sku or '',
            item.seller_sku or '',
            str(item.quantity),
            f"{item.weight:.2f} kg",
        )
        for text, (col_x, col_w) in zip(cells, column_x):
            text = _fit(draw, text, fonts['regular'], col_w - _mm_to_px(2, dpi))
            draw.text((col_x, y), text, font=fonts['regular'], fill=TEXT_COLOR)
        y += row_height
        draw.line([margin, y - 2, width - margin, y - 2], fill=RULE_COLOR, width=1)

    total_text = f"Total weight: {document.total_weight:.2f} kg"
    y += _mm_to_px(2, dpi)
    draw.text((width - margin - _text_width(draw, total_text, fonts['bold']), y), total_text,
              font=fonts['bold'], fill=TEXT_COLOR)

    pages.append(page)
    return pages


def _load_logo(logo_path: Optional[Union[str, Path]]) -> Optional[Image.Image]:
    if not logo_path:
        return None
    try:
        return Image.open(logo_path).convert('RGB')
    except (OSError, ValueError) as e:
        logger.warning(f"Could not load logo {logo_path}: {e}, continuing without logo")
        return None


def generate_pdf(documents: Sequence[PackingSlipDocument], output_path: Union[str, Path],
                 slip_date: Optional[date] = None, dpi: int = DEFAULT_DPI,
                 logo_path: Optional[Union[str, Path]] = None) -> Path:
    """
    Save packing slips as a multi-page PDF.

    Args:
        documents: Packing slips, one (or more, for long item lists) page each
        output_path: Target .pdf file
        slip_date: Date printed on the slips (default today)
        dpi: Page resolution
        logo_path: Optional image drawn at the top of every slip

    Returns:
        The output path

    Raises:
        ExportError: If there is nothing to export or the PDF cannot be written
    """
    if not documents:
        raise ExportError("No packing slips to export")

    output_path = Path(output_path)
    logger.info(f"Generating PDF with {len(documents)} packing slips at {dpi} DPI")

    logo = _load_logo(logo_path)
    try:
        pages: List[Image.Image] = []
        for document in documents:
            pages.extend(render_pages(document, slip_date, dpi, logo))

        output_path.parent.mkdir(parents=True, exist_ok=True)
        pages[0].save(
            output_path,
            'PDF',
            resolution=float(dpi),
            save_all=True,
            append_images=pages[1:],
        )
    except (OSError, ValueError, BarcodeError) as e:
        logger.error(f"PDF generation failed: {e}", exc_info=True)
        raise ExportError(f"Failed to generate PDF: {e}")

    logger.info(f"PDF saved to {output_path} ({len(pages)} pages)")
    return output_path
