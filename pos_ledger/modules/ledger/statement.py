"""Plain-text invoice statement: current totals plus the edit history."""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from jinja2 import Template

from ...constants import APP_NAME, CURRENCY
from ...utils.helpers import fmt_money
from .status import label

if TYPE_CHECKING:  # pragma: no cover
    from ...database.repositories.invoices_repo import Invoice

TEMPLATE_PATH = Path(__file__).resolve().parents[2] / "resources" / "templates" / "invoice_statement.txt"


def render_statement(invoice: "Invoice", *, company: str = APP_NAME) -> str:
    template_content = TEMPLATE_PATH.read_text(encoding="utf-8")
    template = Template(template_content, trim_blocks=True, keep_trailing_newline=True)
    return template.render(
        company=company,
        currency=CURRENCY,
        invoice=invoice,
        items=invoice.items,
        summary=invoice.summary,
        edits=invoice.edits,
        status_label=label(invoice.status),
        money=fmt_money,
    )
