"""
Certificate PDF generator for document requests.

Uses reportlab to render an official-looking certificate with:
- Republic / municipality / barangay header and the document title
- Body text drawn from the resident snapshot taken at approval
- Border, seal watermark (when a local seal file is available)
- Punong Barangay signature block and tracking number footer

Entry point: generate_certificate_pdf(request, barangay) -> bytes
"""
from __future__ import annotations

import logging
import os
import textwrap
from datetime import date, datetime
from io import BytesIO
from pathlib import Path
from typing import Optional

from flask import current_app
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ibarangay.models.document import STATUS_APPROVED, STATUS_PAID, STATUS_RELEASED
from ibarangay.utils.time import utc_now

logger = logging.getLogger(__name__)

PRINTABLE_STATUSES = (STATUS_APPROVED, STATUS_PAID, STATUS_RELEASED)

CERTIFICATE_BODIES = {
    'Barangay Clearance': (
        "This certification is being issued upon the request of the above-named person "
        "for whatever legal purpose it may serve. He/She is a person of good moral character "
        "and has no derogatory record on file in this office."
    ),
    'Certificate of Residency': (
        "This certifies that the person whose name appears above has been a resident of this "
        "barangay for a period of time and is known to be of good moral character."
    ),
    'Certificate of Indigency': (
        "This is to certify that the person whose name appears hereon is one of the bonafide "
        "residents of this barangay and that he/she belongs to an indigent family."
    ),
    'Business Permit': (
        "This is to certify that a business under the name of the above person is operating "
        "within the jurisdiction of this barangay and has been granted this permit."
    ),
    'Good Moral Character Certificate': (
        "This is to certify that the person named above is a resident of this barangay and is "
        "known to me to be of good moral character and a law-abiding citizen."
    ),
    'Solo Parent Certificate': (
        "This is to certify that the person named above is a solo parent residing in this "
        "barangay, and is entitled to the benefits under Republic Act No. 8972, also known as "
        "the \"Solo Parents' Welfare Act of 2000\"."
    ),
}


class CertificateError(Exception):
    pass


def _safe_text(value: object) -> str:
    """Return PDF-safe text for built-in ReportLab fonts."""
    text = str(value or "")
    try:
        text.encode("latin-1")
        return text
    except UnicodeEncodeError:
        return text.encode("latin-1", "replace").decode("latin-1")


def _ordinal(day: int) -> str:
    if 10 <= day % 100 <= 20:
        suffix = 'th'
    else:
        suffix = {1: 'st', 2: 'nd', 3: 'rd'}.get(day % 10, 'th')
    return f"{day}{suffix}"


def age_on(birthdate: date, today: date) -> int:
    years = today.year - birthdate.year
    if (today.month, today.day) < (birthdate.month, birthdate.day):
        years -= 1
    return years


def _parse_birthdate(value) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
    except ValueError:
        return None


def _resolve_local_seal(seal_url: Optional[str]) -> Optional[Path]:
    """Map an /uploads URL of the seal onto the file below UPLOAD_FOLDER."""
    if not seal_url or not seal_url.startswith('/uploads/'):
        return None
    base = current_app.config.get('UPLOAD_FOLDER') or 'uploads'
    path = Path(base, *seal_url[len('/uploads/'):].split('/'))
    return path if path.exists() else None


def _draw_border(c: canvas.Canvas, margin_mm: float = 12.0):
    width, height = A4
    m = margin_mm * mm
    c.setStrokeColor(colors.HexColor("#003399"))
    c.setLineWidth(3)
    c.rect(m, m, width - 2 * m, height - 2 * m, stroke=1, fill=0)


def _draw_watermark(c: canvas.Canvas, seal: Optional[Path], opacity: float = 0.1, size_mm: float = 140.0):
    if seal is None:
        return
    width, height = A4
    try:
        img = ImageReader(str(seal))
    except (IOError, OSError) as e:
        logger.warning("Seal image could not be read: %s", e)
        return
    c.saveState()
    c.translate(width / 2, height / 2)
    c.setFillAlpha(opacity)
    size = size_mm * mm
    c.drawImage(img, -size / 2, -size / 2, width=size, height=size, preserveAspectRatio=True, mask='auto')
    c.restoreState()


def _draw_header(c: canvas.Canvas, barangay_name: str, barangay_address: str, seal: Optional[Path]):
    width, height = A4
    top_y = height - 32 * mm

    if seal is not None:
        try:
            img = ImageReader(str(seal))
            c.drawImage(img, 24 * mm, top_y - 16 * mm, width=22 * mm, height=22 * mm,
                        preserveAspectRatio=True, mask='auto')
        except (IOError, OSError) as e:
            logger.warning("Seal image could not be drawn in header: %s", e)

    c.setFillColor(colors.black)
    c.setFont("Times-Roman", 13)
    c.drawCentredString(width / 2, top_y, "Republic of the Philippines")
    locality = barangay_address.replace(', Philippines', '')
    c.drawCentredString(width / 2, top_y - 7 * mm, _safe_text(locality))
    c.setFont("Times-Bold", 20)
    c.drawCentredString(width / 2, top_y - 16 * mm, _safe_text(barangay_name))

    c.setStrokeColor(colors.HexColor("#003399"))
    c.setLineWidth(2)
    c.line(24 * mm, top_y - 24 * mm, width - 24 * mm, top_y - 24 * mm)


def _draw_paragraph(c: canvas.Canvas, text: str, x: float, y: float, max_chars: int = 80,
                    leading: float = 7 * mm, indent: str = '        ') -> float:
    """Draw wrapped text starting at ``y``; returns the y below the last line."""
    for line in textwrap.wrap(indent + text, width=max_chars, drop_whitespace=False):
        c.drawString(x, y, _safe_text(line.rstrip()))
        y -= leading
    return y - 4 * mm


def generate_certificate_pdf(request, barangay, issued_on: Optional[date] = None) -> bytes:
    """
    Render the certificate for an approved request.

    Args:
        request: DocumentRequest in Approved, Paid or Released status
        barangay: BarangayConfig supplying name, address and seal
        issued_on: Issue date printed on the certificate (default today)

    Raises:
        CertificateError: The request is not printable
    """
    if request.status not in PRINTABLE_STATUSES:
        raise CertificateError(f'Certificates are only available for approved requests (status: {request.status})')
    snapshot = request.resident_snapshot
    if not snapshot:
        raise CertificateError('Request has no resident snapshot')

    issued_on = issued_on or utc_now().date()
    full_name = f"{snapshot.get('first_name', '')} {snapshot.get('last_name', '')}".strip()
    birthdate = _parse_birthdate(snapshot.get('birthdate'))
    address = snapshot.get('address') or ''
    barangay_name = barangay.name
    barangay_address = barangay.address
    seal = _resolve_local_seal(barangay.seal_logo_url)

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(f"{request.document_type} - {full_name}")
    width, height = A4

    _draw_border(c)
    _draw_watermark(c, seal)
    _draw_header(c, barangay_name, barangay_address, seal)

    c.setFont("Times-Bold", 22)
    c.drawCentredString(width / 2, height - 75 * mm, _safe_text(request.document_type.upper()))

    x = 28 * mm
    y = height - 95 * mm
    c.setFont("Times-Bold", 13)
    c.drawString(x, y, "TO WHOM IT MAY CONCERN:")
    y -= 12 * mm

    c.setFont("Times-Roman", 13)
    age_text = f"{age_on(birthdate, issued_on)} years old, " if birthdate else ''
    y = _draw_paragraph(
        c,
        f"This is to certify that {full_name.upper()}, {age_text}is a bonafide resident of "
        f"{address}.",
        x, y,
    )

    body = CERTIFICATE_BODIES.get(request.document_type)
    if body:
        y = _draw_paragraph(c, body, x, y)

    y = _draw_paragraph(
        c,
        f"Issued this {_ordinal(issued_on.day)} day of {issued_on.strftime('%B')}, {issued_on.year} "
        f"at the Office of the Punong Barangay, {barangay_name}, {barangay_address}.",
        x, y,
    )

    # Signature block
    captain = current_app.config.get('PUNONG_BARANGAY_NAME', 'AMADO MAGTIBAY')
    sig_x = width - 75 * mm
    sig_y = 60 * mm
    c.setStrokeColor(colors.black)
    c.setLineWidth(1)
    c.line(sig_x - 30 * mm, sig_y, sig_x + 30 * mm, sig_y)
    c.setFont("Times-Bold", 13)
    c.drawCentredString(sig_x, sig_y - 6 * mm, _safe_text(captain.upper()))
    c.setFont("Times-Roman", 12)
    c.drawCentredString(sig_x, sig_y - 12 * mm, "Punong Barangay")

    c.setFont("Helvetica", 8)
    c.setFillColor(colors.grey)
    c.drawString(
        18 * mm, 18 * mm,
        _safe_text(f"Tracking No: {request.tracking_number} | Not a valid document without the official barangay seal."),
    )

    c.showPage()
    c.save()
    logger.info("Generated certificate for %s", request.tracking_number)
    return buffer.getvalue()


def certificate_filename(request) -> str:
    last_name = (request.resident_snapshot or {}).get('last_name') or 'resident'
    stem = request.document_type.replace(' ', '_')
    return os.path.basename(f"{stem}-{last_name.replace(' ', '_')}.pdf")
