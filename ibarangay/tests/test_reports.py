from datetime import date
from io import BytesIO

import pytest
from flask_jwt_extended import create_access_token
from openpyxl import load_workbook

from ibarangay import db
from ibarangay.app import create_app
from ibarangay.config import Config
from ibarangay.models.document import DocumentRequest
from ibarangay.models.resident import Resident
from ibarangay.models.user import User
from ibarangay.utils.reports import (
    ReportError,
    format_currency,
    monthly_revenue_rows,
    normalize_format,
    report_filename,
)


class ReportsConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False


def _request(seq, status, amount, on, resident_id=1):
    return DocumentRequest(
        tracking_number=f'IBGY-240101{seq:03d}',
        reference_number=f'{seq:010d}',
        resident_id=resident_id,
        resident_name='Juan Dela Cruz',
        document_type='Barangay Clearance',
        request_date=on,
        amount=amount,
        status=status,
    )


def _setup(role='Treasurer'):
    app = create_app(ReportsConfig)
    client = app.test_client()
    with app.app_context():
        db.create_all()
        resident = Resident(
            first_name='Juan',
            last_name='Dela Cruz',
            purok='Purok 1',
            address='Purok 1, Brgy. Mina De Oro, Bongabong, Oriental Mindoro',
            birthdate=date(1990, 5, 17),
            household_number='HH-001',
        )
        user = User(name='Official', email='official@example.com', password_hash='x', role=role, is_active=True)
        db.session.add_all([resident, user])
        db.session.flush()
        db.session.add_all([
            _request(1, 'Paid', 50, date(2024, 3, 2), resident.id),
            _request(2, 'Released', 250, date(2024, 3, 20), resident.id),
            _request(3, 'Approved', 75, date(2024, 3, 21), resident.id),
            _request(4, 'Released', 100, date(2024, 1, 5), resident.id),
        ])
        db.session.commit()
        token = create_access_token(identity=str(user.id), additional_claims={'role': role})
    return app, client, {'Authorization': f'Bearer {token}'}


def test_format_helpers():
    assert format_currency(1234) == 'PHP 1,234.00'
    assert format_currency(None) == 'PHP 0.00'
    assert normalize_format('PDF') == 'pdf'
    assert normalize_format('xlsx') == 'excel'
    with pytest.raises(ReportError):
        normalize_format('docx')
    assert report_filename('Monthly Revenue Report', 'excel', date(2024, 5, 1)) == 'Monthly_Revenue_Report_2024-05-01.xlsx'


def test_monthly_revenue_counts_paid_and_released_only():
    rows = monthly_revenue_rows([
        _request(1, 'Paid', 50, date(2024, 3, 2)),
        _request(2, 'Released', 250, date(2024, 3, 20)),
        _request(3, 'Approved', 75, date(2024, 3, 21)),
        _request(4, 'Rejected', 75, date(2024, 2, 1)),
        _request(5, 'Released', 100, date(2024, 1, 5)),
    ])
    assert rows == [['2024-01', 'PHP 100.00'], ['2024-03', 'PHP 300.00']]


def test_revenue_report_as_excel():
    app, client, headers = _setup()

    resp = client.get('/api/reports/monthly-revenue?format=excel', headers=headers)
    assert resp.status_code == 200
    assert 'Monthly_Revenue_Report_' in resp.headers['Content-Disposition']

    sheet = load_workbook(BytesIO(resp.data)).active
    values = [[cell.value for cell in row] for row in sheet.iter_rows()]
    assert values == [
        ['Month', 'Total Revenue'],
        ['2024-01', 'PHP 100.00'],
        ['2024-03', 'PHP 300.00'],
    ]


def test_masterlist_as_pdf():
    app, client, headers = _setup(role='Secretary')

    resp = client.get('/api/reports/resident-masterlist', headers=headers)
    assert resp.status_code == 200
    assert resp.mimetype == 'application/pdf'
    assert resp.data.startswith(b'%PDF')


def test_issuance_report_lists_every_request():
    app, client, headers = _setup()

    resp = client.get('/api/reports/document-issuance?format=xlsx', headers=headers)
    sheet = load_workbook(BytesIO(resp.data)).active
    rows = list(sheet.iter_rows(values_only=True))
    assert rows[0] == ('Tracking No.', 'Resident Name', 'Document', 'Date', 'Status', 'Amount')
    assert len(rows) == 5
    assert rows[1][0] == 'IBGY-240101003'


def test_report_errors():
    app, client, headers = _setup()
    assert client.get('/api/reports/unknown-report', headers=headers).status_code == 404
    assert client.get('/api/reports/monthly-revenue?format=csv', headers=headers).status_code == 400


def test_residents_cannot_export():
    app, client, headers = _setup(role='Resident')
    assert client.get('/api/reports/resident-masterlist', headers=headers).status_code == 403
