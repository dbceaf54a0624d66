import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import jwt
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from gateway.auth.dependencies import get_reset_notifier
from gateway.auth.jwt_handler import encode_token
from gateway.auth.passwords import hash_password
from gateway.database import get_db, init_schema
from gateway.main import create_app
from gateway.models.login_log import LoginLog
from gateway.models.user import SAML_PASSWORD_SENTINEL, Role, User

REGISTRATION = {
    'fullName': 'Ravi Shankar',
    'email': 'Ravi@Example.com',
    'mobileNumber': '9123456780',
    'hsscId': 'HSSC2024001',
    'password': 'Secret@123',
    'role': 'STUDENT',
    'instituteName': 'ITI Pune',
    'instituteCategory': 'COLLEGE',
    'pincode': '411001',
}


def _bearer(token: str) -> dict:
    return {'Authorization': f'Bearer {token}'}


def test_root_reports_health(client) -> None:
    assert client.get('/').json() == {'status': 'SSO Gateway Running'}


def test_admin_login_returns_user_and_token_pair(client, make_user) -> None:
    admin = make_user(email='admin@hssc.org', role=Role.ADMIN, full_name='HSSC Administrator')

    response = client.post('/api/auth/login', json={'email': 'Admin@HSSC.org ', 'password': 'Admin@123'})
    body = response.json()

    assert response.status_code == 200
    assert body['message'] == 'Login successful'
    assert body['user']['id'] == admin.id
    assert body['user']['role'] == 'ADMIN'
    assert body['user']['fullName'] == 'HSSC Administrator'
    assert 'password' not in body['user']
    assert body['accessToken'] != body['refreshToken']
    assert jwt.decode(body['accessToken'], 'access-secret', algorithms=['HS256'])['role'] == 'ADMIN'


def test_login_failures_share_one_public_message(client, db, make_user) -> None:
    make_user(email='student@hssc.org')
    make_user(email='saml@hssc.org', password=SAML_PASSWORD_SENTINEL)
    make_user(email='inactive@hssc.org', is_active=False)

    attempts = [
        ('student@hssc.org', 'Wrong@123'),
        ('nobody@hssc.org', 'Admin@123'),
        ('saml@hssc.org', 'saml_user'),
        ('inactive@hssc.org', 'Admin@123'),
    ]
    for email, password in attempts:
        response = client.post('/api/auth/login', json={'email': email, 'password': password})
        assert response.status_code == 401
        assert response.json() == {'message': 'Invalid email or password', 'code': 'invalid_credentials'}

    reasons = {entry.reason for entry in db.query(LoginLog).filter_by(success=False)}
    assert reasons == {'bad_password', 'user_not_found', 'wrong_provider', 'account_inactive'}


def test_login_requires_email_and_password(client) -> None:
    assert client.post('/api/auth/login', json={'email': '', 'password': 'x'}).status_code == 422
    assert client.post('/api/auth/login', json={'email': 'a@b.co'}).status_code == 422


def test_refresh_rotates_and_rejects_reuse(client, make_user, login_as) -> None:
    make_user()
    tokens = login_as('student@hssc.org')

    first = client.post('/api/auth/refresh', json={'refreshToken': tokens['refreshToken']})
    reuse = client.post('/api/auth/refresh', json={'refreshToken': tokens['refreshToken']})

    assert first.status_code == 200
    assert first.json()['refreshToken'] != tokens['refreshToken']
    assert reuse.status_code == 401
    assert reuse.json()['code'] == 'token_revoked'
    second = client.post('/api/auth/refresh', json={'refreshToken': first.json()['refreshToken']})
    assert second.status_code == 200


def test_refresh_rejects_access_token_and_garbage(client, make_user, login_as) -> None:
    make_user()
    tokens = login_as('student@hssc.org')

    assert client.post('/api/auth/refresh', json={'refreshToken': tokens['accessToken']}).status_code == 401
    assert client.post('/api/auth/refresh', json={'refreshToken': 'garbage'}).status_code == 401


def test_logout_always_succeeds_and_revokes(client, make_user, login_as) -> None:
    make_user()
    tokens = login_as('student@hssc.org')

    for payload in ({'refreshToken': tokens['refreshToken']}, {'refreshToken': tokens['refreshToken']}, {'refreshToken': 'garbage'}, {}):
        response = client.post('/api/auth/logout', json=payload)
        assert response.status_code == 200
        assert response.json() == {'message': 'Logged out successfully'}

    assert client.post('/api/auth/logout').status_code == 200
    assert client.post('/api/auth/refresh', json={'refreshToken': tokens['refreshToken']}).status_code == 401


def test_me_requires_valid_bearer(client, make_user, login_as) -> None:
    user = make_user()
    tokens = login_as('student@hssc.org')

    assert client.get('/api/auth/me', headers=_bearer(tokens['accessToken'])).json()['user']['id'] == user.id
    missing = client.get('/api/auth/me')
    assert missing.status_code == 401
    assert missing.headers['www-authenticate'] == 'Bearer'


def test_expired_and_tampered_access_tokens_are_told_apart(client, make_user) -> None:
    user = make_user()
    payload = {'type': 'access', 'userId': user.id, 'email': user.email, 'role': 'STUDENT', 'hsscId': user.hssc_id}
    expired = encode_token(payload, 'access-secret', 'HS256', timedelta(seconds=-5))
    forged = encode_token(payload, 'not-the-secret', 'HS256', timedelta(minutes=5))

    expired_response = client.get('/api/auth/me', headers=_bearer(expired))
    forged_response = client.get('/api/auth/me', headers=_bearer(forged))

    assert expired_response.status_code == 401
    assert expired_response.json()['code'] == 'token_expired'
    assert forged_response.status_code == 401
    assert forged_response.json()['code'] == 'invalid_token'


def test_deactivated_user_cannot_use_access_token(client, db, make_user, login_as) -> None:
    user = make_user()
    tokens = login_as('student@hssc.org')
    user.is_active = False
    db.commit()

    assert client.get('/api/auth/me', headers=_bearer(tokens['accessToken'])).status_code == 401


def test_register_creates_account(client) -> None:
    response = client.post('/api/auth/register', json=REGISTRATION)

    assert response.status_code == 201
    assert response.json()['user']['email'] == 'ravi@example.com'
    assert client.post('/api/auth/login', json={'email': 'ravi@example.com', 'password': 'Secret@123'}).status_code == 200


def test_register_rejects_duplicate_email(client) -> None:
    client.post('/api/auth/register', json=REGISTRATION)

    response = client.post('/api/auth/register', json={**REGISTRATION, 'hsscId': 'HSSC2024002'})

    assert response.status_code == 409
    assert response.json()['code'] == 'user_already_exists'


def test_register_validates_input(client) -> None:
    for overrides in ({'password': 'weakpass'}, {'role': 'ADMIN'}, {'mobileNumber': '12345'}, {'email': 'nope'}, {'pincode': 'abc'}):
        assert client.post('/api/auth/register', json={**REGISTRATION, **overrides}).status_code == 422


def test_concurrent_refresh_requests_succeed_once(tmp_path, settings) -> None:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'gateway.db'}",
        connect_args={'check_same_thread': False, 'timeout': 10},
    )
    init_schema(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    with factory() as db:
        db.add(
            User(
                full_name='Race Tester',
                email='race@hssc.org',
                password=hash_password('Admin@123', rounds=4),
                hssc_id='HSSCRACE',
            )
        )
        db.commit()

    app = create_app(settings)

    def override_get_db():
        session = factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    refresh_token = client.post('/api/auth/login', json={'email': 'race@hssc.org', 'password': 'Admin@123'}).json()[
        'refreshToken'
    ]
    barrier = threading.Barrier(2)

    def attempt(_) -> int:
        barrier.wait()
        return client.post('/api/auth/refresh', json={'refreshToken': refresh_token}).status_code

    with ThreadPoolExecutor(max_workers=2) as pool:
        statuses = sorted(pool.map(attempt, range(2)))

    assert statuses == [200, 401]
    engine.dispose()


def test_app_uses_database_from_its_settings(settings, tmp_path) -> None:
    database_path = tmp_path / 'injected.db'
    app = create_app(settings.model_copy(update={'DATABASE_URL': f'sqlite:///{database_path}'}))

    with TestClient(app) as client:
        register_response = client.post('/api/auth/register', json=REGISTRATION)
        login_response = client.post('/api/auth/login', json={'email': 'ravi@example.com', 'password': 'Secret@123'})

    assert register_response.status_code == 201, register_response.text
    assert login_response.status_code == 200, login_response.text
    assert database_path.exists()
    stored = sessionmaker(bind=app.state.engine)()
    try:
        assert stored.query(User).filter(User.email == 'ravi@example.com').count() == 1
    finally:
        stored.close()
        app.state.engine.dispose()


def test_separate_apps_do_not_share_databases(settings, tmp_path) -> None:
    first = create_app(settings.model_copy(update={'DATABASE_URL': f"sqlite:///{tmp_path / 'first.db'}"}))
    second = create_app(settings.model_copy(update={'DATABASE_URL': f"sqlite:///{tmp_path / 'second.db'}"}))

    with TestClient(first) as first_client, TestClient(second) as second_client:
        first_client.post('/api/auth/register', json=REGISTRATION)
        response = second_client.post('/api/auth/login', json={'email': 'ravi@example.com', 'password': 'Secret@123'})

    assert response.status_code == 401
    first.state.engine.dispose()
    second.state.engine.dispose()


class CapturingNotifier:
    def __init__(self):
        self.urls = []

    def send_password_reset(self, email: str, full_name: str, reset_url: str) -> None:
        self.urls.append(reset_url)


def test_password_reset_flow(client, make_user) -> None:
    make_user()
    notifier = CapturingNotifier()
    client.app.dependency_overrides[get_reset_notifier] = lambda: notifier

    forgot = client.post('/api/auth/forgot-password', json={'email': 'student@hssc.org'})
    token = parse_qs(urlparse(notifier.urls[0]).query)['token'][0]
    valid = client.post('/api/auth/validate-reset-token', json={'email': 'student@hssc.org', 'token': token})
    reset = client.post(
        '/api/auth/reset-password',
        json={'email': 'student@hssc.org', 'token': token, 'password': 'Changed@456'},
    )
    reused = client.post(
        '/api/auth/reset-password',
        json={'email': 'student@hssc.org', 'token': token, 'password': 'Another@789'},
    )

    assert forgot.status_code == 200
    assert valid.json() == {'message': 'Token is valid'}
    assert reset.json() == {'message': 'Password reset successfully'}
    assert reused.status_code == 400
    assert reused.json() == {'message': 'Invalid or expired reset token', 'code': 'invalid_reset_token'}
    assert client.post('/api/auth/login', json={'email': 'student@hssc.org', 'password': 'Admin@123'}).status_code == 401
    assert client.post('/api/auth/login', json={'email': 'student@hssc.org', 'password': 'Changed@456'}).status_code == 200


def test_forgot_password_response_does_not_reveal_accounts(client, make_user) -> None:
    make_user()
    notifier = CapturingNotifier()
    client.app.dependency_overrides[get_reset_notifier] = lambda: notifier

    known = client.post('/api/auth/forgot-password', json={'email': 'student@hssc.org'})
    unknown = client.post('/api/auth/forgot-password', json={'email': 'nobody@hssc.org'})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert len(notifier.urls) == 1


def test_reset_password_rejects_weak_password_and_bad_token(client, make_user) -> None:
    make_user()

    weak = client.post('/api/auth/reset-password', json={'email': 'student@hssc.org', 'token': 'abc', 'password': 'short'})
    bad_token = client.post(
        '/api/auth/reset-password',
        json={'email': 'student@hssc.org', 'token': 'not-issued', 'password': 'Changed@456'},
    )
    missing = client.post('/api/auth/validate-reset-token', json={'email': 'student@hssc.org', 'token': ' '})

    assert weak.status_code == 422
    assert bad_token.status_code == 400
    assert bad_token.json()['code'] == 'invalid_reset_token'
    assert missing.status_code == 422
