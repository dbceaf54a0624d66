import base64

from onelogin.saml2.errors import OneLogin_Saml2_Error

from gateway.auth import saml
from gateway.models.user import User
from gateway.routes.saml_routes import render_handoff_page

SAML_RESPONSE = base64.b64encode(
    b'<samlp:Response xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol" ID="_r1" Version="2.0"/>'
).decode()


class FakeSamlAuth:
    attributes = {'email': ['learner@example.com'], 'displayName': ['Learner One']}
    errors = []
    return_to = None

    def __init__(self, request_data, settings):
        self.request_data = request_data

    def login(self, return_to=None):
        FakeSamlAuth.return_to = return_to
        return 'https://idp.example.com/sso?SAMLRequest=abc'

    def logout(self, return_to=None):
        FakeSamlAuth.return_to = return_to
        return 'https://idp.example.com/slo?SAMLRequest=def'

    def process_response(self):
        return None

    def get_errors(self):
        return self.errors

    def get_last_error_reason(self):
        return None

    def is_authenticated(self):
        return True

    def get_attributes(self):
        return self.attributes

    def get_nameid(self):
        return None


def test_saml_login_redirects_to_identity_provider(monkeypatch, client) -> None:
    monkeypatch.setattr(saml, 'OneLogin_Saml2_Auth', FakeSamlAuth)

    response = client.get('/api/saml/login', params={'RelayState': '/courses'}, follow_redirects=False)

    assert response.status_code == 307
    assert response.headers['location'] == 'https://idp.example.com/sso?SAMLRequest=abc'
    assert FakeSamlAuth.return_to == '/courses'


def test_saml_login_drops_off_site_relay_state(monkeypatch, client) -> None:
    monkeypatch.setattr(saml, 'OneLogin_Saml2_Auth', FakeSamlAuth)

    client.get('/api/saml/login', params={'RelayState': 'https://evil.example.net'}, follow_redirects=False)

    assert FakeSamlAuth.return_to == '/dashboard'


def test_saml_logout_returns_to_frontend(monkeypatch, client) -> None:
    monkeypatch.setattr(saml, 'OneLogin_Saml2_Auth', FakeSamlAuth)

    response = client.get('/api/saml/logout', follow_redirects=False)

    assert response.status_code == 307
    assert FakeSamlAuth.return_to == 'http://localhost:3000'


def test_acs_returns_handoff_page_with_tokens(monkeypatch, client, db) -> None:
    monkeypatch.setattr(saml, 'OneLogin_Saml2_Auth', FakeSamlAuth)

    response = client.post('/api/saml/acs', data={'SAMLResponse': SAML_RESPONSE, 'RelayState': '/courses'})

    assert response.status_code == 200
    assert response.headers['content-type'].startswith('text/html')
    assert response.headers['cache-control'] == 'no-store'
    assert "localStorage.setItem('accessToken'" in response.text
    assert 'window.location.replace("/courses")' in response.text
    assert db.query(User).filter_by(email='learner@example.com').count() == 1


def test_acs_rejects_malformed_response(monkeypatch, client, db) -> None:
    monkeypatch.setattr(saml, 'OneLogin_Saml2_Auth', FakeSamlAuth)

    response = client.post('/api/saml/acs', data={'SAMLResponse': base64.b64encode(b'<html/>').decode()})

    assert response.status_code == 400
    assert response.json()['code'] == 'malformed_saml_response'
    assert db.query(User).count() == 0


def test_acs_rejects_signature_failures(monkeypatch, client, db) -> None:
    class RejectingSamlAuth(FakeSamlAuth):
        errors = ['invalid_response']

    monkeypatch.setattr(saml, 'OneLogin_Saml2_Auth', RejectingSamlAuth)

    response = client.post('/api/saml/acs', data={'SAMLResponse': SAML_RESPONSE})

    assert response.status_code == 400
    assert db.query(User).count() == 0


def test_handoff_page_escapes_script_breakout() -> None:
    page = render_handoff_page('a</script><script>alert(1)</script>', 'r"t', "/x'y")

    assert '</script><script>alert(1)' not in page
    assert '\\u003c/script\\u003e' in page
    assert '"r\\"t"' in page


def test_metadata_endpoint_serves_sp_metadata(client, settings) -> None:
    response = client.get('/api/saml/metadata')

    assert response.status_code == 200
    assert response.headers['content-type'].startswith('application/xml')
    assert settings.SAML_SP_ENTITY_ID in response.text
    assert settings.SAML_SP_ACS_URL in response.text


def test_saml_login_with_broken_settings_returns_configuration_error(monkeypatch, client) -> None:
    def broken_auth(request_data, settings):
        raise OneLogin_Saml2_Error('Invalid dict settings: idp_cert_or_fingerprint_not_found_and_required')

    monkeypatch.setattr(saml, 'OneLogin_Saml2_Auth', broken_auth)

    response = client.get('/api/saml/login', follow_redirects=False)

    assert response.status_code == 500
    assert response.json()['code'] == 'configuration_error'
