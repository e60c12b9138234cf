from datetime import date

import bcrypt

from flask_jwt_extended import create_access_token

from ibarangay import db
from ibarangay.app import create_app
from ibarangay.config import Config
from ibarangay.models.audit import AuditLog
from ibarangay.models.resident import Resident
from ibarangay.models.user import User


class AuthRoutesConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False


def _pw_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def _seed_staff(role='Admin', email='admin@example.com', name='Ana Reyes', is_active=True):
    user = User(
        name=name,
        email=email,
        password_hash=_pw_hash('StrongPass123'),
        role=role,
        is_active=is_active,
    )
    db.session.add(user)
    db.session.commit()
    return user


def _seed_resident_user(email='juan@example.com'):
    resident = Resident(
        first_name='Juan',
        last_name='Dela Cruz',
        purok='Purok 1',
        address='Purok 1, Brgy. Mina De Oro, Bongabong, Oriental Mindoro',
        birthdate=date(1990, 5, 17),
        household_number='HH-001',
    )
    user = User(
        name='Juan Dela Cruz',
        email=email,
        password_hash=_pw_hash('StrongPass123'),
        role='Resident',
        is_active=True,
    )
    db.session.add_all([resident, user])
    db.session.flush()
    resident.user_id = user.id
    user.resident_id = resident.id
    db.session.commit()
    return resident, user


def _token(user):
    return create_access_token(identity=str(user.id), additional_claims={'role': user.role})


def _auth(token):
    return {'Authorization': f'Bearer {token}'}


def test_login_returns_token_and_profile():
    app = create_app(AuthRoutesConfig)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        _seed_resident_user()

    resp = client.post('/api/auth/login', json={
        'email': 'JUAN@example.com',
        'password': 'StrongPass123',
    })
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['access_token']
    assert body['user']['role'] == 'Resident'
    assert body['user']['resident']['first_name'] == 'Juan'
    assert 'password_hash' not in body['user']

    me = client.get('/api/auth/me', headers=_auth(body['access_token']))
    assert me.status_code == 200
    assert me.get_json()['email'] == 'juan@example.com'


def test_login_failures():
    app = create_app(AuthRoutesConfig)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        _seed_staff()
        _seed_staff(role='Secretary', email='former@example.com', is_active=False)

    assert client.post('/api/auth/login', json={'email': 'admin@example.com'}).status_code == 400

    resp = client.post('/api/auth/login', json={
        'email': 'admin@example.com',
        'password': 'WrongPass123',
    })
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'Invalid credentials'

    resp = client.post('/api/auth/login', json={
        'email': 'former@example.com',
        'password': 'StrongPass123',
    })
    assert resp.status_code == 403


def test_me_requires_token():
    app = create_app(AuthRoutesConfig)
    client = app.test_client()
    with app.app_context():
        db.create_all()

    assert client.get('/api/auth/me').status_code == 401


def test_resident_profile_edit_syncs_account_name():
    app = create_app(AuthRoutesConfig)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        resident, user = _seed_resident_user()
        resident_id, user_id = resident.id, user.id
        token = _token(user)

    resp = client.put('/api/auth/me', headers=_auth(token), json={
        'last_name': 'Santos',
        'purok': 'Purok 5',
    })
    assert resp.status_code == 200
    assert resp.get_json()['user']['name'] == 'Juan Santos'

    with app.app_context():
        resident = db.session.get(Resident, resident_id)
        assert resident.address.startswith('Purok 5, ')
        assert db.session.get(User, user_id).name == 'Juan Santos'
        assert AuditLog.query.filter_by(entity_type='resident', action='update').count() == 1


def test_staff_profile_edit_rejects_taken_email():
    app = create_app(AuthRoutesConfig)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        _seed_staff()
        secretary = _seed_staff(role='Secretary', email='sec@example.com', name='Liza Soberano')
        token = _token(secretary)

    resp = client.put('/api/auth/me', headers=_auth(token), json={'email': 'admin@example.com'})
    assert resp.status_code == 409


def test_resident_profile_edit_with_taken_email_saves_nothing():
    app = create_app(AuthRoutesConfig)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        resident, user = _seed_resident_user(email='a@example.com')
        _seed_resident_user(email='b@example.com')
        resident_id, user_id = resident.id, user.id
        token = _token(user)

    resp = client.put('/api/auth/me', headers=_auth(token), json={
        'first_name': 'Pedro',
        'purok': 'Purok 4',
        'email': 'b@example.com',
    })
    assert resp.status_code == 409
    assert resp.get_json()['error'] == 'Email already in use'

    with app.app_context():
        resident = db.session.get(Resident, resident_id)
        assert resident.first_name == 'Juan'
        assert resident.purok == 'Purok 1'
        user = db.session.get(User, user_id)
        assert (user.name, user.email) == ('Juan Dela Cruz', 'a@example.com')
        assert AuditLog.query.count() == 0


def test_change_password():
    app = create_app(AuthRoutesConfig)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        admin = _seed_staff()
        token = _token(admin)

    resp = client.post('/api/auth/change-password', headers=_auth(token), json={
        'current_password': 'nope',
        'new_password': 'AnotherPass456',
    })
    assert resp.status_code == 401

    resp = client.post('/api/auth/change-password', headers=_auth(token), json={
        'current_password': 'StrongPass123',
        'new_password': 'AnotherPass456',
    })
    assert resp.status_code == 200

    resp = client.post('/api/auth/login', json={
        'email': 'admin@example.com',
        'password': 'AnotherPass456',
    })
    assert resp.status_code == 200


def test_register_resident_creates_linked_account():
    app = create_app(AuthRoutesConfig)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        secretary = _seed_staff(role='Secretary', email='sec@example.com')
        treasurer = _seed_staff(role='Treasurer', email='treasurer@example.com')
        sec_token = _token(secretary)
        treasurer_token = _token(treasurer)

    payload = {
        'first_name': 'Maria',
        'last_name': 'Santos',
        'email': 'maria@example.com',
        'password': 'StrongPass123',
        'purok': 'Purok 2',
        'birthdate': '1985-11-02',
        'household_number': 'HH-014',
    }

    resp = client.post('/api/residents', headers=_auth(treasurer_token), json=payload)
    assert resp.status_code == 403

    resp = client.post('/api/residents', headers=_auth(sec_token), json=payload)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['resident']['user_id'] == body['user']['id']
    assert body['user']['resident_id'] == body['resident']['id']
    assert body['resident']['address'] == 'Purok 2, Brgy. Mina De Oro, Bongabong, Oriental Mindoro'

    resp = client.post('/api/residents', headers=_auth(sec_token), json=payload)
    assert resp.status_code == 409

    listing = client.get('/api/residents?q=santos', headers=_auth(treasurer_token))
    assert listing.status_code == 200
    assert listing.get_json()['pagination']['total'] == 1


def test_residents_cannot_browse_directory():
    app = create_app(AuthRoutesConfig)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        _, user = _seed_resident_user()
        token = _token(user)

    assert client.get('/api/residents', headers=_auth(token)).status_code == 403
    assert client.get('/api/users', headers=_auth(token)).status_code == 403


def test_admin_manages_staff_accounts():
    app = create_app(AuthRoutesConfig)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        admin = _seed_staff()
        admin_id = admin.id
        token = _token(admin)

    resp = client.post('/api/users', headers=_auth(token), json={
        'name': 'Pedro Penduko',
        'email': 'treasurer@example.com',
        'password': 'StrongPass123',
        'role': 'Treasurer',
    })
    assert resp.status_code == 201
    treasurer_id = resp.get_json()['user']['id']

    listing = client.get('/api/users?role=Treasurer', headers=_auth(token))
    assert listing.get_json()['count'] == 1

    assert client.get('/api/users?role=Janitor', headers=_auth(token)).status_code == 400

    resp = client.put(f'/api/users/{treasurer_id}', headers=_auth(token), json={'is_active': False})
    assert resp.status_code == 200
    assert resp.get_json()['user']['is_active'] is False

    resp = client.put(f'/api/users/{admin_id}', headers=_auth(token), json={'is_active': False})
    assert resp.status_code == 400

    assert client.put('/api/users/999', headers=_auth(token), json={'name': 'Ghost'}).status_code == 404


def test_user_rename_splits_onto_resident():
    app = create_app(AuthRoutesConfig)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        admin = _seed_staff()
        resident, user = _seed_resident_user()
        resident_id, user_id = resident.id, user.id
        token = _token(admin)

    resp = client.put(f'/api/users/{user_id}', headers=_auth(token), json={'name': 'Maria Clara Santos'})
    assert resp.status_code == 200

    with app.app_context():
        resident = db.session.get(Resident, resident_id)
        assert (resident.first_name, resident.last_name) == ('Maria', 'Clara Santos')


def test_single_word_rename_keeps_records_in_step():
    app = create_app(AuthRoutesConfig)
    client = app.test_client()

    with app.app_context():
        db.create_all()
        admin = _seed_staff()
        resident, user = _seed_resident_user()
        resident_id, user_id = resident.id, user.id
        token = _token(admin)

    resp = client.put(f'/api/users/{user_id}', headers=_auth(token), json={'name': 'Pedro'})
    assert resp.status_code == 200

    with app.app_context():
        resident = db.session.get(Resident, resident_id)
        user = db.session.get(User, user_id)
        assert (resident.first_name, resident.last_name) == ('Pedro', 'Dela Cruz')
        assert user.name == resident.full_name == 'Pedro Dela Cruz'
