"""Receipt PDF rendering (ReportLab, A5). Reads only the receipt's frozen snapshot."""
import io
import logging

from reportlab.lib import colors
from reportlab.lib.pagesizes import A5
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

from feedesk.config import settings
from feedesk.models.receipt import Receipt

logger = logging.getLogger(__name__)

BORDER = colors.HexColor("#707070")
HEADER_FILL = colors.HexColor("#e0e0e0")


def number_to_words_indian(n: int) -> str:
    """Convert an amount to words (Indian style). E.g. 52000 -> 'Rupees Fifty Two Thousand Only'."""
    if n == 0:
        return "Rupees Zero Only"
    if n < 0:
        return "Rupees (Negative) Only"
    ones = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine"]
    tens = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]
    teens = ["Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen"]

    def up_to_99(x: int) -> str:
        if x < 10:
            return ones[x]
        if x < 20:
            return teens[x - 10]
        t, o = divmod(x, 10)
        return (tens[t] + " " + ones[o]).strip()

    def up_to_999(x: int) -> str:
        if x < 100:
            return up_to_99(x)
        h, r = divmod(x, 100)
        return (ones[h] + " Hundred " + up_to_99(r)).strip()

    def below_lakh(x: int) -> str:
        if x < 1000:
            return up_to_999(x)
        q, r = divmod(x, 1000)
        return (up_to_99(q) + " Thousand " + up_to_999(r)).strip()

    parts = []
    crore, rest = divmod(n, 100_000_00)
    lakh, rest = divmod(rest, 100_000)
    if crore:
        parts.append(below_lakh(crore) + " Crore")
    if lakh:
        parts.append(up_to_99(lakh) + " Lakh")
    if rest:
        parts.append(below_lakh(rest))
    return "Rupees " + " ".join(parts) + " Only"


def _money(amount: int) -> str:
    return f"{settings.currency_label}{amount:,}"


def _breakdown_rows(receipt: Receipt) -> list[list[str]]:
    snap = receipt.snapshot
    rows = [["Fee Component", "Original", "Payable"]]
    for li in snap.line_items:
        label = li.component_name or li.fee_component_id
        if li.waived:
            label += " (waived)"
        rows.append([label, _money(li.original_amount), _money(li.adjusted_amount)])
    rows.append(["Gross", "", _money(snap.gross_amount)])
    if snap.scholarship_amount:
        rows.append(["Scholarship", "", "-" + _money(snap.scholarship_amount)])
    if snap.custom_discount and snap.custom_discount.amount:
        rows.append(["Discount", "", "-" + _money(snap.custom_discount.amount)])
    rows.append(["Net Payable", "", _money(snap.net_amount)])
    return rows


def render_receipt_pdf(receipt: Receipt) -> bytes:
    """
    Layout (A5 portrait):
      - Header: school name and address on the left, receipt number and date on the right.
      - Student / session / installment line.
      - Fee breakdown table from the snapshot, then the installment paid in this receipt.
      - Amount in words, payment mode and reference, signatory box.
    """
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A5)
    w, h = A5
    margin = 6 * mm
    y = h - margin
    table_width = w - 2 * margin
    c.setStrokeColor(BORDER)

    school_name = (settings.school_name or settings.app_name).strip()
    c.setFont("Helvetica-Bold", 14)
    c.drawString(margin + 2 * mm, y - 6 * mm, school_name[:50])
    if settings.school_address:
        c.setFont("Helvetica", 8)
        c.drawString(margin + 2 * mm, y - 11 * mm, settings.school_address.replace("\n", " ")[:90])
    c.setFont("Helvetica", 9)
    c.drawRightString(w - margin - 2 * mm, y - 5 * mm, f"Receipt # {receipt.receipt_number}")
    c.drawRightString(w - margin - 2 * mm, y - 10 * mm, f"Date: {receipt.generated_at.strftime('%d/%m/%Y')}")
    c.rect(margin, y - 14 * mm, table_width, 14 * mm, stroke=1, fill=0)
    y -= 20 * mm

    inst = receipt.snapshot.installment
    c.setFont("Helvetica", 9)
    c.drawString(margin, y, f"Student: {receipt.student_id}    Session: {receipt.session_id}")
    y -= 5 * mm
    c.drawString(
        margin, y,
        f"Installment {inst.installment_number} of {_money(inst.amount)}, due {inst.due_date.strftime('%d/%m/%Y')}",
    )
    y -= 9 * mm

    c.setFont("Helvetica-Bold", 14)
    title = "RECEIPT OF PAYMENT" if not receipt.voided else "RECEIPT OF PAYMENT (VOID)"
    c.drawCentredString(w / 2, y, title)
    y -= 4 * mm

    table = Table(_breakdown_rows(receipt), colWidths=[table_width * 0.5, table_width * 0.25, table_width * 0.25])
    table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.5, BORDER),
                ("BACKGROUND", (0, 0), (-1, 0), HEADER_FILL),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
            ]
        )
    )
    _, th = table.wrapOn(c, table_width, h)
    table.drawOn(c, margin, y - th)
    y -= th + 6 * mm

    c.setFont("Helvetica-Bold", 10)
    c.drawString(margin, y, f"Amount received: {_money(receipt.amount)}")
    y -= 5 * mm
    c.setFont("Helvetica", 9)
    c.drawString(margin, y, number_to_words_indian(receipt.amount)[:95])
    y -= 5 * mm
    c.drawString(
        margin, y,
        f"Paid so far on this installment: {_money(inst.paid_amount)} of {_money(inst.amount)} ({inst.status.value})",
    )
    y -= 5 * mm
    mode_line = f"Mode: {receipt.payment_mode.value.upper()}"
    if receipt.transaction_ref:
        mode_line += f"    Ref: {receipt.transaction_ref[:40]}"
    c.drawString(margin, y, mode_line)
    y -= 8 * mm

    box_h = 20 * mm
    mid_x = margin + table_width / 2
    c.rect(margin, y - box_h, table_width, box_h, stroke=1, fill=0)
    c.line(mid_x, y - box_h, mid_x, y)
    c.setFont("Helvetica-Bold", 9)
    c.drawString(margin + 2 * mm, y - 4 * mm, "Notes:")
    c.drawString(mid_x + 2 * mm, y - 4 * mm, "Authorised Signatory:")

    c.save()
    logger.debug("Rendered receipt %s (%d bytes)", receipt.receipt_number, buf.tell())
    return buf.getvalue()
