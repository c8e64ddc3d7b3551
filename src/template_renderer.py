"""
HTML packing slip templates.

Templates are plain HTML with ``{{placeholder}}`` variables and one
``{{#items}}...{{/items}}`` block repeated per item. Rendering is a simple
substitution: there are no conditionals or nested loops. Every substituted
value is HTML-escaped.

Slip variables:
    {{order_number}} {{date}} {{customer_name}} {{customer_phone}}
    {{customer_address}} {{customer_username}} {{total_items}}
    {{total_products}} {{total_orders}} {{total_weight}}

Item variables (inside the items block):
    {{item_name}} {{item_sku}} {{item_seller_sku}} {{item_quantity}}
    {{item_weight}} {{item_order_id}} {{item_image_url}} {{item_index}}
"""

import html
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from exceptions import TemplateError
from local_store import LocalStore
from logger import get_logger
from packing_slip import PackingSlipDocument, PackingSlipItem

logger = get_logger(__name__)

TEMPLATES_KEY = 'customTemplates'
DEFAULT_TEMPLATE_KEY = 'defaultTemplate'

ITEMS_BLOCK = re.compile(r"{{#items}}(.*?){{/items}}", re.DOTALL)
VARIABLE = re.compile(r"{{\s*([a-z_]+)\s*}}")

SLIP_VARIABLES = (
    'order_number', 'date', 'customer_name', 'customer_phone', 'customer_address',
    'customer_username', 'total_items', 'total_products', 'total_orders', 'total_weight',
)
ITEM_VARIABLES = (
    'item_name', 'item_sku', 'item_seller_sku', 'item_quantity', 'item_weight',
    'item_order_id', 'item_image_url', 'item_index',
)

DEFAULT_TEMPLATE_HTML = """<div class="packing-slip">
  <header>
    <h1>PACKING SLIP</h1>
    <p>Order Number: {{order_number}}</p>
    <p>Date: {{date}}</p>
  </header>
  <section class="customer">
    <strong>{{customer_name}}</strong>
    <p>{{customer_address}}</p>
    <p>{{customer_phone}}</p>
  </section>
  <p class="summary">Items: {{total_items}} | Products: {{total_products}} | Orders: {{total_orders}}</p>
  <table>
    <thead>
      <tr><th>#</th><th>Product</th><th>SKU</th><th>Seller SKU</th><th>Qty</th><th>Order ID</th></tr>
    </thead>
    <tbody>
      {{#items}}<tr><td>{{item_index}}</td><td>{{item_name}}</td><td>{{item_sku}}</td><td>{{item_seller_sku}}</td><td>{{item_quantity}}</td><td>{{item_order_id}}</td></tr>
      {{/items}}
    </tbody>
  </table>
  <p class="weight">Total weight: {{total_weight}} kg</p>
</div>"""

DEFAULT_TEMPLATE_CSS = """.packing-slip { font-family: Helvetica, Arial, sans-serif; font-size: 10pt; }
.packing-slip h1 { font-size: 18pt; margin: 0; }
.packing-slip .customer { text-align: right; }
.packing-slip table { width: 100%; border-collapse: collapse; }
.packing-slip th, .packing-slip td { border-bottom: 1px solid #ccc; padding: 4px; text-align: left; }"""


@dataclass
class Template:
    """A user-editable HTML/CSS packing slip template."""
    name: str
    html: str
    css: str = ''
    variables: List[str] = field(default_factory=list)
    created_at: str = ''
    updated_at: str = ''

    def __post_init__(self):
        if not self.variables:
            self.variables = extract_variables(self.html)

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'html': self.html,
            'css': self.css,
            'variables': list(self.variables),
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Template':
        return cls(
            name=data['name'],
            html=data.get('html', ''),
            css=data.get('css', ''),
            variables=list(data.get('variables') or []),
            created_at=data.get('createdAt', ''),
            updated_at=data.get('updatedAt', ''),
        )


def extract_variables(template_html: str) -> List[str]:
    """List the distinct variable names used in a template, in order of appearance."""
    names: List[str] = []
    for name in VARIABLE.findall(template_html):
        if name not in names:
            names.append(name)
    return names


def validate_template(template: Template) -> List[str]:
    """
    Check a template for problems.

    Returns:
        Human-readable issues; an empty list means the template is usable
    """
    issues = []
    known = set(SLIP_VARIABLES) | set(ITEM_VARIABLES)
    for name in extract_variables(template.html):
        if name not in known:
            issues.append(f"Unknown variable: {{{{{name}}}}}")

    if template.html.count('{{#items}}') != template.html.count('{{/items}}'):
        issues.append("Unbalanced {{#items}} block")

    outside_items = ITEMS_BLOCK.sub('', template.html)
    for name in extract_variables(outside_items):
        if name in ITEM_VARIABLES:
            issues.append(f"Item variable used outside the items block: {{{{{name}}}}}")
    return issues


DEFAULT_TEMPLATE = Template(name='Default', html=DEFAULT_TEMPLATE_HTML, css=DEFAULT_TEMPLATE_CSS)


def _format_weight(value: float) -> str:
    return f"{value:.2f}"


def _substitute(text: str, values: Dict[str, str]) -> str:
    def replace(match):
        name = match.group(1)
        if name not in values:
            return match.group(0)
        return html.escape(values[name])
    return VARIABLE.sub(replace, text)


def _item_values(item: PackingSlipItem, index: int) -> Dict[str, str]:
    return {
        'item_name': item.name,
        'item_sku': item.sku or '',
        'item_seller_sku': item.seller_sku or '',
        'item_quantity': str(item.quantity),
        'item_weight': _format_weight(item.weight),
        'item_order_id': item.order_id or '',
        'item_image_url': item.image_url or '',
        'item_index': str(index + 1),
    }


def slip_values(document: PackingSlipDocument, slip_date: Optional[date] = None) -> Dict[str, str]:
    """Values of the slip-level variables for one document."""
    slip_date = slip_date or date.today()
    return {
        'order_number': document.order_number,
        'date': f"{slip_date:%B} {slip_date.day}, {slip_date.year}",
        'customer_name': document.customer.name,
        'customer_phone': document.customer.phone,
        'customer_address': document.customer.address,
        'customer_username': document.customer.username or '',
        'total_items': str(document.total_items),
        'total_products': str(document.total_products),
        'total_orders': str(document.total_orders),
        'total_weight': _format_weight(document.total_weight),
    }


def render_slip(template: Template, document: PackingSlipDocument,
                slip_date: Optional[date] = None) -> str:
    """
    Render one packing slip.

    Each part of the template is substituted exactly once, so values that
    themselves contain ``{{...}}`` are left as written.

    Returns:
        A <style> block with the template CSS followed by the rendered HTML
    """
    values = slip_values(document, slip_date)
    parts = []
    position = 0
    for match in ITEMS_BLOCK.finditer(template.html):
        parts.append(_substitute(template.html[position:match.start()], values))
        block = match.group(1)
        for index, item in enumerate(document.items):
            parts.append(_substitute(block, {**values, **_item_values(item, index)}))
        position = match.end()
    parts.append(_substitute(template.html[position:], values))
    return f"<style>{template.css}</style>{''.join(parts)}"


def render_document(template: Template, documents: List[PackingSlipDocument],
                    slip_date: Optional[date] = None, title: str = "Packing Slips") -> str:
    """
    Render all packing slips into one printable HTML page.

    Each slip starts on a new printed page.
    """
    slips = "\n".join(
        f'<div class="slip-page" style="page-break-after: always;">'
        f'{render_slip(template, document, slip_date)}</div>'
        for document in documents
    )
    return (
        "<!DOCTYPE html>\n"
        f"<html><head><meta charset=\"utf-8\"><title>{html.escape(title)}</title></head>\n"
        f"<body>\n{slips}\n</body></html>\n"
    )


class TemplateStore:
    """Persistence for user templates and the name of the default one."""

    def __init__(self, store: LocalStore):
        self.store = store

    def list(self) -> List[Template]:
        data = self.store.get(TEMPLATES_KEY, [])
        templates = []
        for item in data if isinstance(data, list) else []:
            try:
                templates.append(Template.from_dict(item))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed stored template: {e}")
        return templates

    def get(self, name: str) -> Optional[Template]:
        for template in self.list():
            if template.name == name:
                return template
        return None

    def save(self, template: Template) -> Template:
        """
        Add or replace a template, keeping its original creation time.

        Raises:
            TemplateError: If the template has problems (see validate_template)
        """
        issues = validate_template(template)
        if issues:
            raise TemplateError(f"Template '{template.name}' is invalid:\n" + "\n".join(issues))

        now = datetime.now().isoformat()
        templates = self.list()
        existing = next((t for t in templates if t.name == template.name), None)
        template.created_at = existing.created_at if existing else (template.created_at or now)
        template.updated_at = now
        template.variables = extract_variables(template.html)

        templates = [t for t in templates if t.name != template.name] + [template]
        self.store.set(TEMPLATES_KEY, [t.to_dict() for t in templates])
        logger.info(f"Template '{template.name}' saved")
        return template

    def delete(self, name: str) -> bool:
        templates = self.list()
        remaining = [t for t in templates if t.name != name]
        if len(remaining) == len(templates):
            return False
        self.store.set(TEMPLATES_KEY, [t.to_dict() for t in remaining])
        if self.store.get(DEFAULT_TEMPLATE_KEY) == name:
            self.store.delete(DEFAULT_TEMPLATE_KEY)
        logger.info(f"Template '{name}' deleted")
        return True

    def set_default(self, name: str) -> None:
        """
        Make a stored template the default. Naming the built-in template
        while no stored template has its name goes back to the built-in one.

        Raises:
            TemplateError: If no such template exists
        """
        if name == DEFAULT_TEMPLATE.name and self.get(name) is None:
            self.store.delete(DEFAULT_TEMPLATE_KEY)
            return
        if self.get(name) is None:
            raise TemplateError(f"Template not found: {name}")
        self.store.set(DEFAULT_TEMPLATE_KEY, name)

    def get_default(self) -> Template:
        """The configured default template, or the built-in one."""
        name = self.store.get(DEFAULT_TEMPLATE_KEY)
        if name:
            template = self.get(name)
            if template:
                return template
            logger.warning(f"Default template '{name}' not found, using built-in template")
        return DEFAULT_TEMPLATE

    def resolve(self, name: Optional[str] = None) -> Template:
        """
        Template by name, or the default when name is None.

        Raises:
            TemplateError: If a name is given and no such template exists
        """
        if not name:
            return self.get_default()
        if name == DEFAULT_TEMPLATE.name:
            return self.get(name) or DEFAULT_TEMPLATE
        template = self.get(name)
        if template is None:
            raise TemplateError(f"Template not found: {name}")
        return template
