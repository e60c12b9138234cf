import base64
import json
from datetime import date
from io import BytesIO

import requests
from flask_jwt_extended import create_access_token
from openpyxl import load_workbook

from ibarangay import db
from ibarangay.app import create_app
from ibarangay.config import Config
from ibarangay.models.resident import Resident
from ibarangay.models.user import User


class AIConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False
    GEMINI_API_KEY = 'test-gemini-key'


class NoKeyConfig(AIConfig):
    GEMINI_API_KEY = ''


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=''):
        self.status_code = status_code
        self._payload = payload
        self.text = text or json.dumps(payload)

    def json(self):
        return self._payload


def _gemini_answer(obj):
    return FakeResponse(payload={
        'candidates': [{'content': {'parts': [{'text': json.dumps(obj)}]}}]
    })


def _setup(config=AIConfig, role='Admin'):
    app = create_app(config)
    client = app.test_client()
    with app.app_context():
        db.create_all()
        db.session.add(Resident(
            first_name='Juan',
            last_name='Dela Cruz',
            purok='Purok 1',
            address='Purok 1, Brgy. Mina De Oro, Bongabong, Oriental Mindoro',
            birthdate=date(1990, 5, 17),
            household_number='HH-001',
        ))
        user = User(name='Ana Reyes', email='official@example.com', password_hash='x', role=role, is_active=True)
        db.session.add(user)
        db.session.commit()
        token = create_access_token(identity=str(user.id), additional_claims={'role': role})
    return app, client, {'Authorization': f'Bearer {token}'}


def test_custom_report_renders_excel(monkeypatch):
    app, client, headers = _setup()
    calls = []

    def fake_post(url, params=None, json=None, timeout=None):
        calls.append({'url': url, 'params': params, 'json': json})
        return _gemini_answer({
            'report_summary': 'One resident lives in Purok 1.',
            'report_data': {
                'title': 'Residents per Purok',
                'headers': ['Purok', 'Residents'],
                'rows': [['Purok 1', 1]],
            },
        })

    monkeypatch.setattr('ibarangay.utils.ai_flows.requests.post', fake_post)

    resp = client.post('/api/reports/ai/custom', headers=headers, json={
        'report_title': 'Residents per Purok',
        'report_description': 'Count residents in each purok',
        'report_parameters': {'purok': 'all'},
        'report_format': 'Excel',
    })
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['report_summary'] == 'One resident lives in Purok 1.'
    assert body['filename'].startswith('Residents_per_Purok_')
    assert body['filename'].endswith('.xlsx')

    sheet = load_workbook(BytesIO(base64.b64decode(body['report']))).active
    values = [[cell.value for cell in row] for row in sheet.iter_rows()]
    assert ['Purok', 'Residents'] in values
    assert ['Purok 1', 1] in values

    assert calls[0]['params'] == {'key': 'test-gemini-key'}
    assert calls[0]['url'].endswith(':generateContent')
    prompt = calls[0]['json']['contents'][0]['parts'][0]['text']
    assert 'Dela Cruz' in prompt
    assert '"purok": "all"' in prompt
    assert calls[0]['json']['generationConfig']['responseMimeType'] == 'application/json'


def test_custom_report_defaults_to_pdf(monkeypatch):
    app, client, headers = _setup()
    monkeypatch.setattr(
        'ibarangay.utils.ai_flows.requests.post',
        lambda *a, **kw: _gemini_answer({
            'report_summary': 'Nothing notable.',
            'report_data': {'title': 'Empty', 'headers': ['Name'], 'rows': []},
        }),
    )

    resp = client.post('/api/reports/ai/custom', headers=headers, json={
        'report_title': 'Empty',
        'report_description': 'Nothing',
    })
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['mimetype'] == 'application/pdf'
    assert base64.b64decode(body['report']).startswith(b'%PDF')


def test_custom_report_validates_input():
    app, client, headers = _setup()

    resp = client.post('/api/reports/ai/custom', headers=headers, json={'report_title': 'No description'})
    assert resp.status_code == 400

    resp = client.post('/api/reports/ai/custom', headers=headers, json={
        'report_title': 'Bad format',
        'report_description': 'x',
        'report_format': 'Word',
    })
    assert resp.status_code == 400


def test_model_shape_errors_become_502(monkeypatch):
    app, client, headers = _setup()
    monkeypatch.setattr(
        'ibarangay.utils.ai_flows.requests.post',
        lambda *a, **kw: _gemini_answer({'summary': 'missing fields'}),
    )

    resp = client.post('/api/reports/ai/custom', headers=headers, json={
        'report_title': 'T',
        'report_description': 'D',
    })
    assert resp.status_code == 502
    assert resp.get_json()['code'] == 'AI_SERVICE_ERROR'


def test_upstream_failures_become_502(monkeypatch):
    app, client, headers = _setup()

    monkeypatch.setattr(
        'ibarangay.utils.ai_flows.requests.post',
        lambda *a, **kw: FakeResponse(status_code=429, payload={'error': 'quota'}),
    )
    resp = client.post('/api/reports/ai/insights', headers=headers, json={})
    assert resp.status_code == 502

    def timeout(*a, **kw):
        raise requests.exceptions.Timeout('slow')

    monkeypatch.setattr('ibarangay.utils.ai_flows.requests.post', timeout)
    resp = client.post('/api/reports/ai/insights', headers=headers, json={})
    assert resp.status_code == 502

    monkeypatch.setattr(
        'ibarangay.utils.ai_flows.requests.post',
        lambda *a, **kw: FakeResponse(payload={
            'candidates': [{'content': {'parts': [{'text': 'not json at all'}]}}]
        }),
    )
    resp = client.post('/api/reports/ai/insights', headers=headers, json={})
    assert resp.status_code == 502


def test_insights(monkeypatch):
    app, client, headers = _setup(role='Barangay Captain')
    seen = {}

    def fake_post(url, params=None, json=None, timeout=None):
        seen['prompt'] = json['contents'][0]['parts'][0]['text']
        return _gemini_answer({'insights': 'Clearance requests peak in June.'})

    monkeypatch.setattr('ibarangay.utils.ai_flows.requests.post', fake_post)

    resp = client.post('/api/reports/ai/insights', headers=headers, json={'parameters': {'focus': 'fees'}})
    assert resp.status_code == 200
    assert resp.get_json() == {'insights': 'Clearance requests peak in June.'}
    assert '"focus": "fees"' in seen['prompt']


def test_missing_api_key_is_reported():
    app, client, headers = _setup(config=NoKeyConfig)
    resp = client.post('/api/reports/ai/insights', headers=headers, json={})
    assert resp.status_code == 502


def test_treasurer_cannot_use_ai():
    app, client, headers = _setup(role='Treasurer')
    assert client.post('/api/reports/ai/insights', headers=headers, json={}).status_code == 403
