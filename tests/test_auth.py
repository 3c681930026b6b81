import pytest
from werkzeug.security import check_password_hash

import app as app_module
from conftest import login, flashes
from models import db, User, ROLE_CUSTOMER, ROLE_STORE_OWNER, ROLE_ADMIN


def test_signup_logs_in_and_goes_to_account_setting(client, app):
    res = client.post('/signup', data={'email': 'New@Example.com', 'password': 'secret', 'username': '새손님'})
    assert res.status_code == 302
    assert res.headers['Location'].endswith('/account-setting')

    user = User.query.filter_by(email='new@example.com').one()
    assert user.role == ROLE_CUSTOMER
    assert check_password_hash(user.password, 'secret')
    with client.session_transaction() as sess:
        assert sess['_user_id'] == str(user.id)


def test_signup_rejects_duplicate_email(client, customer):
    client.post('/signup', data={'email': 'customer@example.com', 'password': 'x'})
    assert User.query.filter_by(email='customer@example.com').count() == 1
    assert flashes(client) == ["이미 가입된 이메일입니다."]


def test_signup_requires_email_and_password(client, app):
    client.post('/signup', data={'email': '', 'password': ''})
    assert User.query.count() == 0
    assert flashes(client) == ["이메일과 비밀번호를 입력해 주세요."]


def test_login_and_logout(client, customer):
    res = client.post('/login?next=/profile', data={'email': 'customer@example.com', 'password': 'pw1234'})
    assert res.headers['Location'].endswith('/profile')
    assert client.get('/profile').status_code == 200

    client.get('/logout')
    assert client.get('/profile').status_code == 302


@pytest.mark.parametrize("next_url", ['https://evil.example.com/', '//evil.example.com/x'])
def test_login_ignores_off_site_next(client, customer, next_url):
    res = client.post('/login', query_string={'next': next_url},
                      data={'email': 'customer@example.com', 'password': 'pw1234'})
    assert res.status_code == 302
    assert res.headers['Location'] == '/'


def test_google_login_keeps_only_local_next(client, app, monkeypatch):
    monkeypatch.setattr(app_module.config, 'GOOGLE_CLIENT_ID', 'client-id')
    res = client.get('/auth/google', query_string={'next': 'https://evil.example.com/'})
    assert res.headers['Location'].startswith('https://accounts.google.com/')
    with client.session_transaction() as sess:
        assert sess['oauth_next'] == '/profile'


def test_login_with_wrong_password(client, customer):
    res = client.post('/login', data={'email': 'customer@example.com', 'password': 'nope'})
    assert res.status_code == 200
    assert '로그인 정보를 다시 한 번 확인해주세요.'.encode() in res.data


# --------------------------------------------------------------------------------
# /api/profile
# --------------------------------------------------------------------------------
def test_api_profile_requires_login(client, app):
    res = client.post('/api/profile', json={'user_id': 1, 'username': 'x'})
    assert res.status_code == 401
    assert res.get_json() == {"message": "Unauthorized"}


def test_api_profile_cannot_touch_other_user(client, customer, owner):
    login(client, customer)
    res = client.post('/api/profile', json={'user_id': owner.id, 'username': 'hacked'})
    assert res.status_code == 403
    assert db.session.get(User, owner.id).username == "점주"


def test_api_profile_updates_own_profile(client, customer):
    login(client, customer)
    res = client.post('/api/profile', json={'user_id': str(customer.id), 'username': '단골', 'role': ROLE_STORE_OWNER})
    assert res.status_code == 200
    assert res.get_json() == {"message": "Profile updated successfully"}
    user = db.session.get(User, customer.id)
    assert (user.username, user.role) == ('단골', ROLE_STORE_OWNER)


@pytest.mark.parametrize("role", [ROLE_ADMIN, 'super_admin', 'root'])
def test_api_profile_cannot_grant_admin(client, customer, role):
    login(client, customer)
    client.post('/api/profile', json={'user_id': customer.id, 'role': role})
    assert db.session.get(User, customer.id).role == ROLE_CUSTOMER


def test_admin_role_is_never_downgraded(client, admin):
    login(client, admin)
    client.post('/api/profile', json={'user_id': admin.id, 'role': ROLE_CUSTOMER})
    assert db.session.get(User, admin.id).role == ROLE_ADMIN


def test_account_setting(client, customer):
    login(client, customer)
    client.post('/account-setting', data={'username': ''})
    assert flashes(client) == ["닉네임을 입력해 주세요."]

    res = client.post('/account-setting', data={'username': '동네주민', 'role': ROLE_STORE_OWNER})
    assert res.headers['Location'].endswith('/profile')
    assert db.session.get(User, customer.id).role == ROLE_STORE_OWNER


# --------------------------------------------------------------------------------
# 구글 로그인
# --------------------------------------------------------------------------------
def test_callback_without_code(client, app):
    res = client.get('/auth/callback')
    assert res.status_code == 302
    assert '/auth-error' in res.headers['Location']
    page = client.get(res.headers['Location'])
    assert b'No authentication code provided' in page.data


def test_callback_with_wrong_state(client, app):
    with client.session_transaction() as sess:
        sess['oauth_state'] = 'expected'
    res = client.get('/auth/callback?code=abc&state=forged')
    assert '/auth-error' in res.headers['Location']


class FakeResponse:
    def __init__(self, status_code, data):
        self.status_code = status_code
        self._data = data

    def json(self):
        return self._data


def test_callback_links_existing_account_by_email(client, customer, monkeypatch):
    monkeypatch.setattr(app_module.requests, 'post',
                        lambda *a, **kw: FakeResponse(200, {'access_token': 'tok'}))
    monkeypatch.setattr(app_module.requests, 'get',
                        lambda *a, **kw: FakeResponse(200, {'id': 'g-123', 'email': 'customer@example.com',
                                                            'name': '구글손님'}))
    with client.session_transaction() as sess:
        sess['oauth_state'] = 'st'
        sess['oauth_next'] = '/profile'

    res = client.get('/auth/callback?code=abc&state=st')
    assert res.headers['Location'].endswith('/profile')
    user = db.session.get(User, customer.id)
    assert (user.auth_provider, user.auth_provider_id) == ('google', 'g-123')
    assert User.query.count() == 1
    with client.session_transaction() as sess:
        assert sess['_user_id'] == str(customer.id)


def test_social_user_created_when_unknown(app):
    user = app_module.find_or_create_social_user('google', 42, None, '새사람')
    assert user.email == 'google_42@social.local'
    assert user.password is None
    assert app_module.find_or_create_social_user('google', 42, None, None).id == user.id
