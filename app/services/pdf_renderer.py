"""Delivery note PDF rendering with reportlab.

Rendering happens in two steps: ``build_lines`` turns a populated note into
a flat list of layout lines (pure data, easy to inspect), and the renderer
draws those lines onto an A4 canvas. The canvas is created with
``invariant=1`` so the same note always produces the same bytes.
"""
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from app.core.exceptions import PdfOutputError, RenderError
from app.models.delivery_note import PopulatedDeliveryNote

logger = logging.getLogger(__name__)

W, H = A4
MARGIN = 50
CONTENT_W = W - 2 * MARGIN

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_ITALIC = "Helvetica-Oblique"

BLACK = HexColor("#000000")
GREY = HexColor("#555555")
LINK_BLUE = HexColor("#1D4ED8")
ALERT_RED = HexColor("#B91C1C")

# (x, width, align) for description, person, quantity, unit price, total
TABLE_COLUMNS = (
    (MARGIN, 150, "left"),
    (MARGIN + 155, 120, "left"),
    (MARGIN + 280, 60, "right"),
    (MARGIN + 345, 75, "right"),
    (MARGIN + 425, 70, "right"),
)
TABLE_HEADERS = ("Description", "Person", "Qty/Hours", "Unit price", "Total")

NOT_AVAILABLE = "N/A"


@dataclass
class LayoutLine:
    kind: str
    text: str = ""
    columns: Tuple[str, ...] = field(default_factory=tuple)
    url: Optional[str] = None


def format_date(value: Optional[datetime]) -> str:
    return value.strftime("%d/%m/%Y") if value else NOT_AVAILABLE


def format_datetime(value: Optional[datetime]) -> str:
    return value.strftime("%d/%m/%Y %H:%M") if value else NOT_AVAILABLE


def format_money(value: float) -> str:
    return f"{value:.2f} €"


def format_quantity(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _or_na(value: Optional[str]) -> str:
    return value if value else NOT_AVAILABLE


def build_lines(populated: PopulatedDeliveryNote) -> List[LayoutLine]:
    """Lay out a delivery note as a list of lines, top to bottom."""
    note = populated.note
    lines: List[LayoutLine] = []

    # Header
    lines.append(LayoutLine("title", f"Delivery Note #{note.note_number}"))
    lines.append(LayoutLine("meta", f"Date: {format_date(note.date)}"))
    lines.append(LayoutLine("space"))

    # Provider
    lines.append(LayoutLine("heading", "Provider:"))
    owner = populated.owner
    if owner:
        name = owner.full_name
        lines.append(LayoutLine("text", f"{name} ({owner.email})" if name else owner.email))
        if owner.has_company:
            company = owner.company
            lines.append(LayoutLine("text", f"Company: {company.name} (CIF: {_or_na(company.cif)})"))
            address = company.address
            if address.street:
                lines.append(LayoutLine(
                    "text",
                    f"Address: {address.street}, {address.city or ''} "
                    f"{address.postal_code or ''}, {address.country or ''}".strip(", "),
                ))
        else:
            lines.append(LayoutLine("text", f"NIF: {_or_na(owner.nif)}"))
    else:
        lines.append(LayoutLine("text", "Provider details not available."))
    lines.append(LayoutLine("space"))

    # Client
    lines.append(LayoutLine("heading", "Client:"))
    client = populated.client
    if client:
        lines.append(LayoutLine("text", f"{_or_na(client.name)} ({_or_na(client.email)})"))
        lines.append(LayoutLine("text", f"CIF/NIF: {_or_na(client.cif)}"))
        lines.append(LayoutLine("text", f"Address: {_or_na(client.address)}"))
    else:
        lines.append(LayoutLine("text", "Client details not available."))
    lines.append(LayoutLine("space"))

    # Project
    lines.append(LayoutLine("heading", "Project:"))
    project = populated.project
    if project:
        lines.append(LayoutLine("text", project.name))
        if project.description:
            lines.append(LayoutLine("small", f"Description: {project.description}"))
    else:
        lines.append(LayoutLine("text", "Project details not available."))
    lines.append(LayoutLine("space"))

    # Items
    lines.append(LayoutLine("heading", "Items:"))
    lines.append(LayoutLine("table_header", columns=TABLE_HEADERS))
    for item in note.items:
        lines.append(LayoutLine("table_row", columns=(
            item.description or "",
            item.person or "",
            format_quantity(item.quantity),
            format_money(item.unit_price) if item.unit_price is not None else "-",
            format_money(item.line_total),
        )))
    if note.has_priced_items:
        lines.append(LayoutLine("total", f"Grand total: {format_money(note.total_amount)}"))

    # Notes
    if note.notes:
        lines.append(LayoutLine("space"))
        lines.append(LayoutLine("heading", "Additional notes:"))
        lines.append(LayoutLine("text", note.notes))

    # Signature
    lines.append(LayoutLine("space"))
    lines.append(LayoutLine("space"))
    if note.is_signed and note.signature_url:
        lines.append(LayoutLine("heading", f"Signed: {format_datetime(note.signed_at)}"))
        if populated.signature_gateway_url:
            lines.append(LayoutLine("link", "View signature (IPFS link)", url=populated.signature_gateway_url))
        else:
            lines.append(LayoutLine("notice", "(Signature link unavailable)"))
    else:
        lines.append(LayoutLine("heading", "Pending signature"))
        lines.append(LayoutLine("signature_line"))

    return lines


class DeliveryNotePdfRenderer:
    """Draws delivery note layouts onto A4 pages."""

    def render(self, populated: PopulatedDeliveryNote) -> bytes:
        """
        Render a populated delivery note to PDF bytes.

        Raises RenderError when laying out or drawing fails and PdfOutputError
        when the finished document cannot be written out. The input is never
        modified.
        """
        buffer = io.BytesIO()
        try:
            lines = build_lines(populated)
            doc = _PdfCanvas(buffer, title=f"Delivery Note {populated.note.note_number}")
            for line in lines:
                doc.draw(line)
        except Exception as e:
            logger.error("Error during PDF generation for note %s: %s", populated.note.id, e)
            raise RenderError("PDF generation failed.", extra={"detail": str(e)}) from e

        try:
            doc.save()
            return buffer.getvalue()
        except Exception as e:
            logger.error("Error writing PDF for note %s: %s", populated.note.id, e)
            raise PdfOutputError("PDF output failed.", extra={"detail": str(e)}) from e


class _PdfCanvas:
    def __init__(self, buffer, title: str):
        self.c = canvas.Canvas(buffer, pagesize=A4, invariant=1)
        self.c.setTitle(title)
        self.c.setAuthor("Albaranes API")
        self.y = H - MARGIN

    def save(self):
        self.c.save()

    # ─── primitives ───

    def ensure_space(self, needed: float):
        if self.y - needed < MARGIN:
            self.c.showPage()
            self.y = H - MARGIN

    def draw_text(self, text, x, y, font=FONT, size=10, color=BLACK, align="left"):
        self.c.saveState()
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        if align == "center":
            self.c.drawCentredString(x, y, text)
        elif align == "right":
            self.c.drawRightString(x, y, text)
        else:
            self.c.drawString(x, y, text)
        self.c.restoreState()

    def draw_line(self, x1, y1, x2, y2, color=GREY, width=0.5):
        self.c.saveState()
        self.c.setStrokeColor(color)
        self.c.setLineWidth(width)
        self.c.line(x1, y1, x2, y2)
        self.c.restoreState()

    def draw_paragraph(self, text, font=FONT, size=10, color=BLACK, leading=14):
        for chunk in simpleSplit(text, font, size, CONTENT_W) or [""]:
            self.ensure_space(leading)
            self.y -= leading
            self.draw_text(chunk, MARGIN, self.y, font, size, color)

    # ─── layout lines ───

    def draw(self, line: LayoutLine):
        handler = getattr(self, f"_draw_{line.kind}")
        handler(line)

    def _draw_title(self, line):
        self.ensure_space(24)
        self.y -= 20
        self.draw_text(line.text, W / 2, self.y, FONT_BOLD, 18, align="center")

    def _draw_meta(self, line):
        self.ensure_space(16)
        self.y -= 16
        self.draw_text(line.text, W - MARGIN, self.y, FONT, 10, align="right")

    def _draw_space(self, line):
        self.y -= 10

    def _draw_heading(self, line):
        self.ensure_space(20)
        self.y -= 18
        self.draw_text(line.text, MARGIN, self.y, FONT_BOLD, 12)

    def _draw_text(self, line):
        self.draw_paragraph(line.text)

    def _draw_small(self, line):
        self.draw_paragraph(line.text, FONT_ITALIC, 9, GREY, 12)

    def _draw_notice(self, line):
        self.draw_paragraph(line.text, FONT, 8, ALERT_RED, 12)

    def _draw_link(self, line):
        self.ensure_space(14)
        self.y -= 14
        self.draw_text(line.text, MARGIN, self.y, FONT, 9, LINK_BLUE)
        width = self.c.stringWidth(line.text, FONT, 9)
        self.draw_line(MARGIN, self.y - 1, MARGIN + width, self.y - 1, LINK_BLUE, 0.5)
        self.c.linkURL(line.url, (MARGIN, self.y - 2, MARGIN + width, self.y + 9), relative=0)

    def _draw_table_header(self, line):
        self.ensure_space(24)
        self.y -= 16
        for text, (x, width, align) in zip(line.columns, TABLE_COLUMNS):
            anchor = x + width if align == "right" else x
            self.draw_text(text, anchor, self.y, FONT_BOLD, 10, align=align)
        self.y -= 4
        self.draw_line(MARGIN, self.y, MARGIN + CONTENT_W, self.y, BLACK, 0.7)

    def _draw_table_row(self, line):
        leading = 12
        wrapped = [
            simpleSplit(text, FONT, 10, width) or [""]
            for text, (_, width, _) in zip(line.columns, TABLE_COLUMNS)
        ]
        height = max(len(cell) for cell in wrapped) * leading + 6
        self.ensure_space(height)
        top = self.y - 14
        for cell, (x, width, align) in zip(wrapped, TABLE_COLUMNS):
            anchor = x + width if align == "right" else x
            for i, chunk in enumerate(cell):
                self.draw_text(chunk, anchor, top - i * leading, FONT, 10, align=align)
        self.y -= height

    def _draw_total(self, line):
        self.ensure_space(24)
        right = MARGIN + CONTENT_W
        self.y -= 4
        self.draw_line(right - 180, self.y, right, self.y, BLACK, 0.7)
        self.y -= 16
        self.draw_text(line.text, right, self.y, FONT_BOLD, 11, align="right")

    def _draw_signature_line(self, line):
        self.ensure_space(50)
        self.y -= 40
        self.draw_line(MARGIN, self.y, MARGIN + 200, self.y, BLACK, 0.7)
        self.draw_text("Signature", MARGIN, self.y - 12, FONT, 8, GREY)
        self.y -= 12
