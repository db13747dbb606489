"""PDF rendering for offer and contract snapshots.

Layout is fixed: company header, title block, document fields, client block,
line-item table with per-row subtotal, subtotal, optional total, optional
notes and extra sections, then terms and footer from the template settings.
Output embeds the generation time, so identical inputs do not produce
identical bytes.
"""

import re
from datetime import datetime, timezone
from io import BytesIO
from typing import List, Optional, Tuple

from pydantic import BaseModel
from pypdf import PdfReader, PdfWriter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from .utils import format_date, format_money

PRESETS = {
    "modern": {"title": 24, "header": 14, "body": 10},
    "classic": {"title": 20, "header": 12, "body": 9},
    "minimal": {"title": 18, "header": 10, "body": 8},
}
DEFAULT_COLOR = "#3b82f6"
MARGIN = 40
TABLE_COLUMNS = ("Robot Model", "Quantity", "Unit Price", "Total")
TABLE_WIDTHS = (215, 70, 115, 115)
ROW_HEIGHT = 18


class PdfTemplate(BaseModel):
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    company_phone: Optional[str] = None
    company_email: Optional[str] = None
    primary_color: str = DEFAULT_COLOR
    header_text: Optional[str] = None
    footer_text: Optional[str] = None
    terms_conditions: Optional[str] = None
    preset: str = "modern"

    @classmethod
    def from_settings(cls, settings: dict) -> "PdfTemplate":
        values = {}
        for key, value in settings.items():
            if not key.startswith("pdf_") or value in (None, ""):
                continue
            values[key[len("pdf_"):]] = value
        return cls(**{k: v for k, v in values.items() if k in cls.model_fields})


class LineItem(BaseModel):
    description: str
    quantity: int
    unit_price: float

    @property
    def subtotal(self) -> float:
        return self.quantity * self.unit_price


class RenderInputs(BaseModel):
    title: str
    number_label: str
    number: str
    issued_at: datetime
    fields: List[Tuple[str, str]] = []
    client_name: Optional[str] = None
    client_fields: List[Tuple[str, str]] = []
    line_items: List[LineItem] = []
    currency: str = "PLN"
    total: Optional[float] = None
    notes: Optional[str] = None
    sections: List[Tuple[str, List[Tuple[str, str]]]] = []

    @property
    def subtotal(self) -> float:
        return sum(item.subtotal for item in self.line_items)


def _rgb(hex_color: str):
    if not re.fullmatch(r"#?[0-9a-fA-F]{6}", hex_color or ""):
        hex_color = DEFAULT_COLOR
    if not hex_color.startswith("#"):
        hex_color = f"#{hex_color}"
    return colors.HexColor(hex_color)


class _Page:
    """Top-down cursor over a reportlab canvas that breaks pages as needed."""

    def __init__(self, c: canvas.Canvas):
        self.c = c
        self.width, self.height = A4
        self.y = self.height - MARGIN

    def need(self, amount: float):
        if self.y - amount < MARGIN:
            self.c.showPage()
            self.y = self.height - MARGIN

    def line(self, text: str, size: float, font: str = "Helvetica", color=colors.black, align: str = "left", step: float = None):
        step = step or size + 5
        self.need(step)
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        if align == "center":
            self.c.drawCentredString(self.width / 2, self.y, text)
        elif align == "right":
            self.c.drawRightString(self.width - MARGIN, self.y, text)
        else:
            self.c.drawString(MARGIN, self.y, text)
        self.c.setFillColor(colors.black)
        self.y -= step

    def paragraph(self, text: str, size: float):
        max_width = self.width - 2 * MARGIN
        for raw in text.splitlines() or [""]:
            for chunk in simpleSplit(raw, "Helvetica", size, max_width) or [""]:
                self.line(chunk, size, step=size + 3)

    def gap(self, amount: float):
        self.y -= amount


def _draw_table(page: _Page, inputs: RenderInputs, accent, body_size: float):
    def row(cells, header=False):
        page.need(ROW_HEIGHT)
        c = page.c
        x = MARGIN
        top = page.y
        if header:
            c.setFillColor(accent)
            c.rect(MARGIN, top - ROW_HEIGHT, sum(TABLE_WIDTHS), ROW_HEIGHT, stroke=0, fill=1)
        c.setFont("Helvetica-Bold" if header else "Helvetica", body_size)
        c.setFillColor(colors.white if header else colors.black)
        for text, width in zip(cells, TABLE_WIDTHS):
            c.setStrokeColor(colors.lightgrey)
            c.rect(x, top - ROW_HEIGHT, width, ROW_HEIGHT, stroke=1, fill=0)
            c.drawString(x + 4, top - ROW_HEIGHT + 5, str(text)[:40])
            x += width
        c.setFillColor(colors.black)
        page.y -= ROW_HEIGHT

    row(TABLE_COLUMNS, header=True)
    for item in inputs.line_items:
        row((
            item.description,
            str(item.quantity),
            f"{format_money(item.unit_price)} {inputs.currency}",
            f"{format_money(item.subtotal)} {inputs.currency}",
        ))


def render_document(inputs: RenderInputs, template: Optional[PdfTemplate] = None) -> bytes:
    template = template or PdfTemplate()
    sizes = PRESETS.get(template.preset, PRESETS["modern"])
    accent = _rgb(template.primary_color)

    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(f"{inputs.title.title()} {inputs.number}")
    page = _Page(c)

    if template.company_name:
        page.line(template.company_name, 16, font="Helvetica-Bold", color=accent)
    for label, value in (
        (None, template.company_address),
        ("Phone", template.company_phone),
        ("Email", template.company_email),
    ):
        if value:
            page.line(f"{label}: {value}" if label else value, sizes["body"])

    page.gap(10)
    page.line(template.header_text or inputs.title.upper(), sizes["title"], font="Helvetica-Bold",
              color=accent, align="center", step=sizes["title"] + 12)

    page.line(f"{inputs.number_label}: {inputs.number}", sizes["header"])
    page.line(f"Date: {format_date(inputs.issued_at)}", sizes["header"])
    for label, value in inputs.fields:
        page.line(f"{label}: {value}", sizes["header"])
    page.gap(6)

    page.line("Client Information", sizes["header"], font="Helvetica-Bold", color=accent)
    page.line(f"Name: {inputs.client_name or 'N/A'}", sizes["body"])
    for label, value in inputs.client_fields:
        page.line(f"{label}: {value}", sizes["body"])
    page.gap(8)

    for heading, rows in inputs.sections:
        if not rows:
            continue
        page.line(heading, sizes["header"], font="Helvetica-Bold", color=accent)
        for label, value in rows:
            page.line(f"{label}: {value}", sizes["body"])
        page.gap(8)

    if inputs.line_items:
        _draw_table(page, inputs, accent, sizes["body"])
        page.gap(12)
    page.line(f"Subtotal: {format_money(inputs.subtotal)} {inputs.currency}", sizes["header"], align="right")
    if inputs.total:
        page.line(f"Total: {format_money(inputs.total)} {inputs.currency}", sizes["header"] + 2,
                  font="Helvetica-Bold", align="right")
    page.gap(10)

    if inputs.notes:
        page.line("Notes:", sizes["body"], font="Helvetica-Bold")
        page.paragraph(inputs.notes, sizes["body"])
        page.gap(8)

    if template.terms_conditions:
        page.line("Terms & Conditions:", sizes["body"], font="Helvetica-Bold", color=accent)
        page.paragraph(template.terms_conditions, sizes["body"] - 1)

    if template.footer_text:
        c.setFont("Helvetica", sizes["body"])
        c.setFillColor(colors.grey)
        c.drawCentredString(page.width / 2, 20, template.footer_text)

    c.showPage()
    c.save()
    return buf.getvalue()


def _utc_stamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def stamp_metadata(pdf_bytes: bytes, title: str, version_number: int, generated_at: datetime) -> bytes:
    reader = PdfReader(BytesIO(pdf_bytes))
    writer = PdfWriter()
    writer.append_pages_from_reader(reader)
    writer.add_metadata({
        "/Title": title,
        "/Subject": f"{title} - version {version_number}",
        "/Producer": "RoboCRM",
        "/RoboCRMVersion": str(version_number),
        "/RoboCRMGeneratedAt": _utc_stamp(generated_at),
    })
    out = BytesIO()
    writer.write(out)
    return out.getvalue()
