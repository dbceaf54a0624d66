import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gateway.auth.passwords import hash_password
from gateway.core.config import Settings
from gateway.database import get_db, init_schema
from gateway.main import create_app
from gateway.models.user import EXTERNAL_PASSWORD_SENTINELS, InstituteCategory, Role, User

TEST_PASSWORD = 'Admin@123'


@pytest.fixture
def settings() -> Settings:
    return Settings(
        JWT_SECRET='access-secret',
        JWT_REFRESH_SECRET='refresh-secret',
        BCRYPT_ROUNDS=4,
        LMS_CLIENT_SECRET='lms-shared-secret',
        LMS_CLIENT_ID='lw-client',
        LMS_ACCESS_TOKEN='lw-access-token',
        LMS_AUTH_URL='https://academy.example.com',
        FRONTEND_URL='http://localhost:3000',
        SAML_IDP_ENTITY_ID='https://idp.example.com/metadata',
        SAML_IDP_SSO_URL='https://idp.example.com/sso',
        SAML_IDP_SLO_URL='https://idp.example.com/slo',
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    init_schema(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make_user(
        email: str = 'student@hssc.org',
        password: str = TEST_PASSWORD,
        role: Role = Role.STUDENT,
        **overrides,
    ) -> User:
        stored_password = password if password in EXTERNAL_PASSWORD_SENTINELS else hash_password(password, rounds=4)
        fields = {
            'full_name': 'Asha Kumar',
            'email': email,
            'password': stored_password,
            'role': role,
            'hssc_id': f'HSSC{uuid.uuid4().hex[:8].upper()}',
            'mobile_number': '9876543210',
            'institute_name': 'Govt Polytechnic',
            'institute_category': InstituteCategory.COLLEGE,
            'pincode': '400001',
        }
        fields.update(overrides)
        user = User(**fields)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def build_client(session_factory):
    def _build_client(app_settings: Settings) -> TestClient:
        app = create_app(app_settings)

        def override_get_db():
            session = session_factory()
            try:
                yield session
            finally:
                session.close()

        app.dependency_overrides[get_db] = override_get_db
        return TestClient(app)

    return _build_client


@pytest.fixture
def client(build_client, settings) -> TestClient:
    return build_client(settings)


@pytest.fixture
def login_as(client):
    def _login_as(email: str, password: str = TEST_PASSWORD) -> dict:
        response = client.post('/api/auth/login', json={'email': email, 'password': password})
        assert response.status_code == 200, response.text
        return response.json()

    return _login_as
