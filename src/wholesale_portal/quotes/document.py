"""
Quote Document - Printable HTML rendering of a quote.

The document is plain HTML meant to be opened in a browser and printed or
saved as PDF from there.
"""
from datetime import datetime
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader

from ..catalog.models import User
from ..clock import utcnow
from .models import Quote

TEMPLATES_DIR = Path(__file__).parent / 'templates'

_jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return ''
    return f"{value:%B} {value.day}, {value.year}"


def format_money(value: float) -> str:
    return f"${value:,.2f}"


def format_terms(value: Optional[str]) -> str:
    return (value or '').replace('-', ' ').upper()


_jinja_env.filters['date'] = format_date
_jinja_env.filters['money'] = format_money
_jinja_env.filters['terms'] = format_terms


def document_filename(quote: Quote) -> str:
    return f"{quote.number}.html"


def render_quote_document(quote: Quote, contact: Optional[User] = None,
                          generated_at: Optional[datetime] = None) -> str:
    """Render a quote with its items, pricing and terms as a standalone HTML page."""
    template = _jinja_env.get_template('quote_document.html')
    return template.render(
        quote=quote,
        contact=contact,
        generated_at=generated_at or utcnow(),
    )
