"""
FILE: src/pages/templates.py
HTML fragments for the server-rendered pages. Every value is escaped.
"""

from html import escape
from typing import Any, Dict, Iterable, List, Optional, Sequence

_HEADER = """<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"><meta name="viewport" content="width=device-width,initial-scale=1.0">
<title>{title}</title></head>
<body style="font-family:Arial,sans-serif;line-height:1.6;color:#333;max-width:960px;margin:0 auto;padding:20px;">
<nav style="margin-bottom:20px;">
  <a href="/patients">Patients</a> |
  <a href="/pharmacy/inventory">Inventory</a> |
  <a href="/pharmacy/reports">Reports</a> |
  <a href="/settings/users">Users</a>
</nav>
<h1>{title}</h1>
"""

_FOOTER = """
</body></html>
"""


def layout(title: str, body: str) -> str:
    return _HEADER.format(title=escape(title)) + body + _FOOTER


def _notice(message: str, color: str, background: str) -> str:
    return (
        f'<div role="alert" style="background:{background};border:1px solid {color};'
        f'border-radius:8px;padding:15px;margin:25px 0;color:{color};">'
        f"<strong>{escape(message)}</strong></div>"
    )


def access_denied() -> str:
    return layout("Access denied", _notice("Access denied", "#a94442", "#f2dede"))


def login_required() -> str:
    body = _notice("Please log in", "#8a6d3b", "#fcf8e3") + '<p><a href="/login">Go to login</a></p>'
    return layout("Please log in", body)


def error_page(message: str = "Something went wrong while loading this page.") -> str:
    return layout("Error", _notice(message, "#a94442", "#f2dede"))


def table(headers: Sequence[str], rows: Iterable[Sequence[Any]], empty: str = "Nothing to show.") -> str:
    rows = list(rows)
    if not rows:
        return f"<p><em>{escape(empty)}</em></p>"
    head = "".join(f"<th style=\"text-align:left;padding:6px;\">{escape(h)}</th>" for h in headers)
    body = "".join(
        "<tr>" + "".join(f"<td style=\"padding:6px;\">{escape('' if c is None else str(c))}</td>" for c in row) + "</tr>"
        for row in rows
    )
    return f'<table style="border-collapse:collapse;width:100%;"><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>'


def medication_form(values: Optional[Dict[str, Any]] = None, error: Optional[str] = None) -> str:
    values = values or {}

    def field(name: str, label: str, kind: str = "text", required: bool = False) -> str:
        value = escape(str(values.get(name) or ""))
        req = " required" if required else ""
        return (
            f'<p><label for="{name}">{escape(label)}</label><br>'
            f'<input id="{name}" name="{name}" type="{kind}" value="{value}"{req}></p>'
        )

    fields: List[str] = [
        field("name", "Name", required=True),
        field("dosage_form", "Dosage form"),
        field("strength", "Strength"),
        field("category", "Category"),
        field("unit_price", "Unit price", "number", required=True),
        field("cost_price", "Cost price", "number"),
        field("stock_quantity", "Stock quantity", "number"),
        field("reorder_level", "Reorder level", "number"),
    ]
    notice = _notice(error, "#a94442", "#f2dede") if error else ""
    return notice + (
        '<form method="post" action="/pharmacy/inventory/add">'
        + "".join(fields)
        + '<button type="submit">Add medication</button></form>'
    )
