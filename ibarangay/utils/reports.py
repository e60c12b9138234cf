"""
Tabular report exports.

Every report is a title, a header row and data rows, rendered either as a
PDF table (reportlab) or a single-sheet workbook (openpyxl). The same
renderers serve the fixed reports below and AI-generated custom reports.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from io import BytesIO
from typing import Iterable, List, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ibarangay.models.document import DocumentRequest, STATUS_PAID, STATUS_RELEASED
from ibarangay.models.resident import Resident
from ibarangay.utils.time import utc_today

logger = logging.getLogger(__name__)

FORMAT_PDF = 'pdf'
FORMAT_EXCEL = 'excel'
FORMATS = (FORMAT_PDF, FORMAT_EXCEL)

PDF_MIMETYPE = 'application/pdf'
XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

RESIDENT_HEADERS = ['User ID', 'Name', 'Address', 'Birthdate', 'Household No.']
REVENUE_HEADERS = ['Month', 'Total Revenue']
ISSUANCE_HEADERS = ['Tracking No.', 'Resident Name', 'Document', 'Date', 'Status', 'Amount']

HEADER_COLOR = '#003399'


class ReportError(Exception):
    pass


def normalize_format(value: str) -> str:
    fmt = (value or '').strip().lower()
    if fmt in ('xlsx', 'xls'):
        fmt = FORMAT_EXCEL
    if fmt not in FORMATS:
        raise ReportError(f"Unsupported report format: {value}")
    return fmt


def format_currency(amount) -> str:
    return f"PHP {float(amount or 0):,.2f}"


def report_filename(title: str, fmt: str, on_date=None) -> str:
    """``Resident Masterlist`` -> ``Resident_Masterlist_2024-05-01.pdf``."""
    on_date = on_date or utc_today()
    ext = 'pdf' if fmt == FORMAT_PDF else 'xlsx'
    stem = '_'.join(str(title).split())
    return f"{stem}_{on_date.strftime('%Y-%m-%d')}.{ext}"


def _cell_text(value) -> str:
    text = '' if value is None else str(value)
    # Built-in PDF fonts are latin-1 only
    return text.encode('latin-1', 'replace').decode('latin-1')


def render_pdf(title: str, headers: Sequence[str], rows: Iterable[Sequence]) -> bytes:
    buffer = BytesIO()
    rows = [list(r) for r in rows]
    pagesize = landscape(A4) if len(headers) > 5 else A4
    doc = SimpleDocTemplate(
        buffer,
        pagesize=pagesize,
        leftMargin=14 * mm,
        rightMargin=14 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=title,
    )
    styles = getSampleStyleSheet()
    cell_style = styles['BodyText']
    cell_style.fontSize = 9
    cell_style.leading = 11

    data = [[_cell_text(h) for h in headers]]
    for row in rows:
        data.append([Paragraph(_cell_text(v), cell_style) for v in row])

    table = Table(data, repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor(HEADER_COLOR)),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, 0), 10),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f1f5f9')]),
    ]))

    elements = [Paragraph(_cell_text(title), styles['Title']), Spacer(1, 4 * mm), table]
    if not rows:
        elements.append(Spacer(1, 4 * mm))
        elements.append(Paragraph('No records found.', styles['BodyText']))
    doc.build(elements)
    return buffer.getvalue()


def render_excel(title: str, headers: Sequence[str], rows: Iterable[Sequence]) -> bytes:
    wb = Workbook()
    ws = wb.active
    # Sheet titles are capped at 31 characters and may not contain []:*?/\
    safe_title = ''.join(ch for ch in str(title) if ch not in '[]:*?/\\')[:31]
    ws.title = safe_title or 'Sheet1'

    ws.append(list(headers))
    header_fill = PatternFill('solid', fgColor=HEADER_COLOR.lstrip('#'))
    for cell in ws[1]:
        cell.font = Font(bold=True, color='FFFFFF')
        cell.fill = header_fill

    widths = [len(str(h)) for h in headers]
    for row in rows:
        values = list(row)
        ws.append(values)
        for idx, value in enumerate(values[:len(widths)]):
            widths[idx] = max(widths[idx], len(str(value)) if value is not None else 0)

    for idx, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = min(width + 2, 60)
    ws.freeze_panes = 'A2'

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def render_table(title: str, headers: Sequence[str], rows: Iterable[Sequence], fmt: str) -> Tuple[bytes, str, str]:
    """Render a report; returns (content, mimetype, filename)."""
    fmt = normalize_format(fmt)
    rows = list(rows)
    if fmt == FORMAT_PDF:
        content, mimetype = render_pdf(title, headers, rows), PDF_MIMETYPE
    else:
        content, mimetype = render_excel(title, headers, rows), XLSX_MIMETYPE
    filename = report_filename(title, fmt)
    logger.info("Rendered report %s (%d rows)", filename, len(rows))
    return content, mimetype, filename


# =============================================================================
# Fixed reports
# =============================================================================

def resident_masterlist_rows(residents: Iterable[Resident]) -> List[list]:
    return [
        [
            r.user_id,
            r.full_name,
            r.address,
            r.birthdate.isoformat() if r.birthdate else '',
            r.household_number,
        ]
        for r in residents
    ]


def monthly_revenue_rows(requests: Iterable[DocumentRequest]) -> List[list]:
    """Sum Paid and Released amounts per request month, oldest month first."""
    totals = defaultdict(float)
    for req in requests:
        if req.status not in (STATUS_PAID, STATUS_RELEASED):
            continue
        totals[req.request_date.strftime('%Y-%m')] += float(req.amount or 0)
    return [[month, format_currency(total)] for month, total in sorted(totals.items())]


def issuance_rows(requests: Iterable[DocumentRequest]) -> List[list]:
    return [
        [
            req.tracking_number,
            req.resident_name,
            req.document_type,
            req.request_date.isoformat() if req.request_date else '',
            req.status,
            format_currency(req.amount),
        ]
        for req in requests
    ]


def export_resident_masterlist(fmt: str):
    residents = Resident.query.order_by(Resident.last_name, Resident.first_name).all()
    return render_table('Resident Masterlist', RESIDENT_HEADERS, resident_masterlist_rows(residents), fmt)


def export_monthly_revenue(fmt: str):
    requests = DocumentRequest.query.filter(
        DocumentRequest.status.in_((STATUS_PAID, STATUS_RELEASED))
    ).all()
    return render_table('Monthly Revenue Report', REVENUE_HEADERS, monthly_revenue_rows(requests), fmt)


def export_document_issuance(fmt: str):
    requests = DocumentRequest.query.order_by(DocumentRequest.request_date.desc(), DocumentRequest.id.desc()).all()
    return render_table('Document Issuance Report', ISSUANCE_HEADERS, issuance_rows(requests), fmt)


REPORTS = {
    'resident-masterlist': export_resident_masterlist,
    'monthly-revenue': export_monthly_revenue,
    'document-issuance': export_document_issuance,
}
