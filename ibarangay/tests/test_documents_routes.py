from datetime import date

from flask_jwt_extended import create_access_token

from ibarangay import db
from ibarangay.app import create_app
from ibarangay.config import Config
from ibarangay.models.document import DocumentRequest
from ibarangay.models.resident import Resident
from ibarangay.models.user import User


class DocumentsConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False


def _seed_resident(first, last, email):
    resident = Resident(
        first_name=first,
        last_name=last,
        purok='Purok 1',
        address='Purok 1, Brgy. Mina De Oro, Bongabong, Oriental Mindoro',
        birthdate=date(1990, 5, 17),
        household_number='HH-001',
    )
    user = User(
        name=f'{first} {last}',
        email=email,
        password_hash='not-a-real-hash',
        role='Resident',
        is_active=True,
    )
    db.session.add_all([resident, user])
    db.session.flush()
    resident.user_id = user.id
    user.resident_id = resident.id
    db.session.commit()
    return resident, user


def _seed_staff(role, email):
    user = User(name=f'{role} Official', email=email, password_hash='not-a-real-hash', role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    return user


def _token(user):
    return create_access_token(identity=str(user.id), additional_claims={'role': user.role})


def _auth(token):
    return {'Authorization': f'Bearer {token}'}


def _setup():
    app = create_app(DocumentsConfig)
    client = app.test_client()
    with app.app_context():
        db.create_all()
        juan, juan_user = _seed_resident('Juan', 'Dela Cruz', 'juan@example.com')
        maria, maria_user = _seed_resident('Maria', 'Santos', 'maria@example.com')
        tokens = {
            'juan': _token(juan_user),
            'maria': _token(maria_user),
            'admin': _token(_seed_staff('Admin', 'admin@example.com')),
            'secretary': _token(_seed_staff('Secretary', 'sec@example.com')),
            'treasurer': _token(_seed_staff('Treasurer', 'treasurer@example.com')),
        }
        ids = {'juan': juan.id, 'maria': maria.id}
    return app, client, tokens, ids


def test_document_types_are_public():
    app = create_app(DocumentsConfig)
    client = app.test_client()

    resp = client.get('/api/documents/types')
    assert resp.status_code == 200
    types = {t['name']: t['amount'] for t in resp.get_json()['types']}
    assert types['Barangay Clearance'] == 50.0
    assert types['Certificate of Indigency'] == 0.0


def test_resident_submits_for_self():
    app, client, tokens, ids = _setup()

    resp = client.post('/api/documents/requests', headers=_auth(tokens['juan']), json={
        'document_type': 'Certificate of Residency',
        'resident_id': ids['maria'],
    })
    assert resp.status_code == 201
    body = resp.get_json()['request']
    assert body['resident_id'] == ids['juan']
    assert body['resident_name'] == 'Juan Dela Cruz'
    assert body['amount'] == 75.0
    assert body['status'] == 'Pending'
    assert body['tracking_number'].startswith('IBGY-')


def test_staff_submission_requires_existing_resident():
    app, client, tokens, ids = _setup()

    resp = client.post('/api/documents/requests', headers=_auth(tokens['secretary']), json={
        'document_type': 'Barangay Clearance',
    })
    assert resp.status_code == 400

    resp = client.post('/api/documents/requests', headers=_auth(tokens['secretary']), json={
        'document_type': 'Barangay Clearance',
        'resident_id': 999,
    })
    assert resp.status_code == 404

    resp = client.post('/api/documents/requests', headers=_auth(tokens['secretary']), json={
        'document_type': 'Barangay Clearance',
        'resident_id': ids['maria'],
    })
    assert resp.status_code == 201

    resp = client.post('/api/documents/requests', headers=_auth(tokens['secretary']), json={
        'document_type': 'Passport',
        'resident_id': ids['maria'],
    })
    assert resp.status_code == 400


def test_residents_only_see_their_own_requests():
    app, client, tokens, ids = _setup()

    client.post('/api/documents/requests', headers=_auth(tokens['juan']), json={'document_type': 'Barangay Clearance'})
    resp = client.post('/api/documents/requests', headers=_auth(tokens['maria']), json={'document_type': 'Business Permit'})
    maria_request_id = resp.get_json()['request']['id']

    listing = client.get('/api/documents/requests', headers=_auth(tokens['juan']))
    assert [r['resident_id'] for r in listing.get_json()['requests']] == [ids['juan']]

    assert client.get(f'/api/documents/requests/{maria_request_id}', headers=_auth(tokens['juan'])).status_code == 404

    detail = client.get(f'/api/documents/requests/{maria_request_id}', headers=_auth(tokens['admin']))
    assert detail.status_code == 200
    assert detail.get_json()['resident']['last_name'] == 'Santos'

    staff_listing = client.get('/api/documents/requests?q=santos', headers=_auth(tokens['secretary']))
    assert staff_listing.get_json()['pagination']['total'] == 1

    assert client.get('/api/documents/requests?status=Lost', headers=_auth(tokens['secretary'])).status_code == 400


def test_status_workflow_over_http():
    app, client, tokens, ids = _setup()

    resp = client.post('/api/documents/requests', headers=_auth(tokens['juan']), json={'document_type': 'Barangay Clearance'})
    request_id = resp.get_json()['request']['id']
    url = f'/api/documents/requests/{request_id}/status'

    resp = client.put(url, headers=_auth(tokens['juan']), json={'status': 'Approved'})
    assert resp.status_code == 403

    resp = client.put(url, headers=_auth(tokens['secretary']), json={'status': 'Released'})
    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'INVALID_TRANSITION'

    resp = client.put(url, headers=_auth(tokens['secretary']), json={'status': 3})
    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'INVALID_TRANSITION'

    resp = client.put(url, headers=_auth(tokens['treasurer']), json={'status': 'Approved'})
    assert resp.status_code == 403
    assert resp.get_json()['code'] == 'TRANSITION_NOT_PERMITTED'

    resp = client.put(url, headers=_auth(tokens['secretary']), json={'status': 'Approved'})
    assert resp.status_code == 200
    body = resp.get_json()['request']
    assert body['status'] == 'Approved'
    assert body['resident_snapshot']['last_name'] == 'Dela Cruz'
    assert body['approval_date']

    resp = client.put(url, headers=_auth(tokens['secretary']), json={'status': 'Approved'})
    assert resp.status_code == 200
    assert resp.get_json()['message'] == 'Status unchanged'

    resp = client.put(url, headers=_auth(tokens['treasurer']), json={'status': 'Paid'})
    assert resp.status_code == 200

    resp = client.put(url, headers=_auth(tokens['secretary']), json={'status': 'Released'})
    assert resp.status_code == 200
    assert resp.get_json()['request']['release_date']

    assert client.put('/api/documents/requests/999/status', headers=_auth(tokens['admin']),
                      json={'status': 'Approved'}).status_code == 404


def test_rejection_reason_is_kept():
    app, client, tokens, ids = _setup()

    resp = client.post('/api/documents/requests', headers=_auth(tokens['maria']), json={'document_type': 'Business Permit'})
    request_id = resp.get_json()['request']['id']

    resp = client.put(f'/api/documents/requests/{request_id}/status', headers=_auth(tokens['admin']), json={
        'status': 'Rejected',
        'rejection_reason': 'Incomplete requirements',
    })
    assert resp.status_code == 200
    assert resp.get_json()['request']['rejection_reason'] == 'Incomplete requirements'


def test_payment_submission_and_verification_queue():
    app, client, tokens, ids = _setup()

    resp = client.post('/api/documents/requests', headers=_auth(tokens['juan']), json={'document_type': 'Barangay Clearance'})
    request_id = resp.get_json()['request']['id']
    pay_url = f'/api/documents/requests/{request_id}/payment'

    resp = client.post(pay_url, headers=_auth(tokens['juan']), json={'transaction_id': '5012345678901'})
    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'PAYMENT_NOT_ALLOWED'

    client.put(f'/api/documents/requests/{request_id}/status', headers=_auth(tokens['secretary']),
               json={'status': 'Approved'})

    assert client.post(pay_url, headers=_auth(tokens['maria']),
                       json={'transaction_id': '5012345678901'}).status_code == 404
    assert client.post(pay_url, headers=_auth(tokens['secretary']),
                       json={'transaction_id': '5012345678901'}).status_code == 403
    assert client.post(pay_url, headers=_auth(tokens['juan']), json={}).status_code == 400

    resp = client.post(pay_url, headers=_auth(tokens['juan']), json={
        'transaction_id': '5012345678901',
        'payment_date': '2024-06-01T08:00:00+08:00',
    })
    assert resp.status_code == 200
    body = resp.get_json()['request']
    assert body['status'] == 'Approved'
    assert body['payment_details']['method'] == 'GCash'
    assert body['payment_details']['payment_date'] == '2024-06-01T00:00:00'

    pending = client.get('/api/documents/payments/pending', headers=_auth(tokens['treasurer']))
    assert pending.status_code == 200
    assert [r['id'] for r in pending.get_json()['requests']] == [request_id]

    assert client.get('/api/documents/payments/pending', headers=_auth(tokens['secretary'])).status_code == 403

    client.put(f'/api/documents/requests/{request_id}/status', headers=_auth(tokens['treasurer']),
               json={'status': 'Paid'})
    pending = client.get('/api/documents/payments/pending', headers=_auth(tokens['treasurer']))
    assert pending.get_json()['count'] == 0


def test_payment_info():
    app, client, tokens, ids = _setup()
    resp = client.get('/api/documents/payment-info', headers=_auth(tokens['juan']))
    assert resp.status_code == 200
    assert resp.get_json()['method'] == 'GCash'
    assert resp.get_json()['account_number']


def test_certificate_download():
    app, client, tokens, ids = _setup()

    resp = client.post('/api/documents/requests', headers=_auth(tokens['juan']), json={'document_type': 'Certificate of Residency'})
    request_id = resp.get_json()['request']['id']
    cert_url = f'/api/documents/requests/{request_id}/certificate'

    assert client.get(cert_url, headers=_auth(tokens['juan'])).status_code == 400

    client.put(f'/api/documents/requests/{request_id}/status', headers=_auth(tokens['secretary']),
               json={'status': 'Approved'})

    resp = client.get(cert_url, headers=_auth(tokens['juan']))
    assert resp.status_code == 200
    assert resp.mimetype == 'application/pdf'
    assert resp.data.startswith(b'%PDF')
    assert 'Certificate_of_Residency-Dela_Cruz.pdf' in resp.headers['Content-Disposition']

    assert client.get(cert_url, headers=_auth(tokens['maria'])).status_code == 404

    with app.app_context():
        assert db.session.get(DocumentRequest, request_id).status == 'Approved'
