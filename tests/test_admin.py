import pytest

import config
import sgt_client
from conftest import login, flashes
from models import (db, User, Store, StoreApplication, Exchange, Transaction, Notice, ROLE_STORE_OWNER,
                    APPLICATION_APPROVED, APPLICATION_REJECTED, EXCHANGE_PENDING,
                    EXCHANGE_SGT_SENT, EXCHANGE_COMPLETE, EXCHANGE_CANCELED, TX_EXCHANGE_OUT)
from admin_routes import exchange_direction


@pytest.fixture
def application(customer, category):
    app_row = StoreApplication(user_id=customer.id, business_name="연수 베이커리", owner_name="김사장",
                               phone_number="0329998888", address="인천 연수구 2", category_id=category.id,
                               referrer_phone_number="01055556666", latitude=37.41, longitude=126.67)
    db.session.add(app_row)
    db.session.commit()
    return app_row


@pytest.fixture
def pending_exchange(app):
    ex = Exchange(sgt_amount=10.0, won_amount=10000, status=EXCHANGE_PENDING, receiver_wallet_address="0xabc")
    db.session.add(ex)
    db.session.commit()
    return ex


@pytest.mark.parametrize("url", ['/admin/applications', '/admin/stores', '/admin/exchanges', '/admin/notices'])
def test_non_admin_gets_403(client, customer, url):
    login(client, customer)
    assert client.get(url).status_code == 403


def test_anonymous_is_sent_to_login(client, app):
    res = client.get('/admin/exchanges')
    assert res.status_code == 302
    assert '/login' in res.headers['Location']


def test_admin_pages_render(client, admin, store, application, pending_exchange):
    login(client, admin)
    for url in ('/admin/applications', '/admin/applications?status=all', '/admin/stores', '/admin/stores?deleted=1',
                '/admin/exchanges', '/admin/exchange-in', '/admin/notices'):
        assert client.get(url).status_code == 200, url
    assert client.get('/admin/').status_code == 302


# --------------------------------------------------------------------------------
# 입점 신청
# --------------------------------------------------------------------------------
def test_approve_creates_store_and_promotes_owner(client, admin, customer, application):
    login(client, admin)
    client.post(f'/admin/applications/{application.id}/approve')

    assert db.session.get(StoreApplication, application.id).status == APPLICATION_APPROVED
    store = Store.query.filter_by(store_name="연수 베이커리").one()
    assert store.user_id == customer.id
    assert store.store_type == 1
    assert store.referrer_phone_number == "01055556666"
    assert store.latitude == 37.41
    assert store.kiosk_key
    assert db.session.get(User, customer.id).role == ROLE_STORE_OWNER
    assert flashes(client) == ["'연수 베이커리' 매장이 개설되었습니다."]


def test_approve_twice_is_refused(client, admin, application):
    login(client, admin)
    client.post(f'/admin/applications/{application.id}/approve')
    flashes(client)
    client.post(f'/admin/applications/{application.id}/approve')
    assert Store.query.count() == 1
    assert "이미 처리된 신청서입니다." in flashes(client)


def test_reject(client, admin, application):
    login(client, admin)
    client.post(f'/admin/applications/{application.id}/reject')
    assert db.session.get(StoreApplication, application.id).status == APPLICATION_REJECTED
    assert Store.query.count() == 0


def test_store_delete_restore_and_excel(client, admin, store):
    login(client, admin)
    client.post(f'/admin/stores/{store.id}/delete')
    assert db.session.get(Store, store.id).deleted_at is not None
    res = client.get('/admin/stores/excel')
    assert res.status_code == 302

    client.post(f'/admin/stores/{store.id}/restore')
    assert db.session.get(Store, store.id).deleted_at is None
    res = client.get('/admin/stores/excel')
    assert res.status_code == 200
    assert res.data[:2] == b'PK'


# --------------------------------------------------------------------------------
# 환전
# --------------------------------------------------------------------------------
def test_approve_exchange_sends_sgt(client, admin, pending_exchange, monkeypatch):
    tx = Transaction(amount=10.0, receiver_wallet_address="0xabc", type=3)
    db.session.add(tx)
    db.session.commit()
    calls = []

    def _approve(exchange_id, receiver, sgt_amount, content=None, created_at=None):
        calls.append((exchange_id, receiver, sgt_amount))
        return {'transaction_id': tx.id}
    monkeypatch.setattr(sgt_client, 'approve_won_to_sgt', _approve)

    login(client, admin)
    client.post(f'/admin/exchanges/{pending_exchange.id}/approve')
    ex = db.session.get(Exchange, pending_exchange.id)
    assert calls == [(ex.id, "0xabc", 10.0)]
    assert ex.status == EXCHANGE_SGT_SENT
    assert ex.transaction_id == tx.id
    assert flashes(client) == ["10.0 SGT가 지갑으로 전송되었습니다."]


def test_approve_exchange_uses_form_address(client, admin, monkeypatch):
    ex = Exchange(sgt_amount=2.0, status=EXCHANGE_PENDING)
    db.session.add(ex)
    db.session.commit()
    monkeypatch.setattr(sgt_client, 'approve_won_to_sgt', lambda *a, **kw: {})
    login(client, admin)
    client.post(f'/admin/exchanges/{ex.id}/approve', data={'receiver_wallet_address': '0xform'})
    ex = db.session.get(Exchange, ex.id)
    assert ex.receiver_wallet_address == '0xform'
    assert ex.status == EXCHANGE_SGT_SENT
    assert ex.transaction_id is None


def test_approve_exchange_without_address(client, admin, monkeypatch):
    ex = Exchange(sgt_amount=2.0, status=EXCHANGE_PENDING)
    db.session.add(ex)
    db.session.commit()
    monkeypatch.setattr(sgt_client, 'approve_won_to_sgt', lambda *a, **kw: pytest.fail("should not be called"))
    login(client, admin)
    client.post(f'/admin/exchanges/{ex.id}/approve')
    assert db.session.get(Exchange, ex.id).status == EXCHANGE_PENDING
    assert flashes(client) == ["지갑 주소를 입력하지 않아 취소되었습니다."]


def test_approve_exchange_server_error_keeps_pending(client, admin, pending_exchange, monkeypatch):
    def _fail(*args, **kwargs):
        raise sgt_client.SgtServerError("Insufficient treasury balance", status_code=400)
    monkeypatch.setattr(sgt_client, 'approve_won_to_sgt', _fail)
    login(client, admin)
    client.post(f'/admin/exchanges/{pending_exchange.id}/approve')
    assert db.session.get(Exchange, pending_exchange.id).status == EXCHANGE_PENDING
    assert flashes(client) == ["환전 승인에 실패했습니다: Insufficient treasury balance"]


def test_approve_only_pending(client, admin, pending_exchange):
    pending_exchange.status = EXCHANGE_CANCELED
    db.session.commit()
    login(client, admin)
    client.post(f'/admin/exchanges/{pending_exchange.id}/approve')
    assert flashes(client) == ["대기중인 요청만 승인할 수 있습니다."]


def test_complete_and_burn(client, admin, pending_exchange, monkeypatch):
    burned = []
    monkeypatch.setattr(sgt_client, 'complete_sgt_to_won', lambda exchange_id: {})
    monkeypatch.setattr(sgt_client, 'process_sgt_burn',
                        lambda exchange_id, sender, amount, created_at=None: burned.append((sender, amount)))
    login(client, admin)

    client.post(f'/admin/exchanges/{pending_exchange.id}/complete')
    assert db.session.get(Exchange, pending_exchange.id).status == EXCHANGE_COMPLETE

    client.post(f'/admin/exchanges/{pending_exchange.id}/burn')
    assert burned == [("0xabc", 10.0)]
    assert "10.0 SGT가 성공적으로 소각되었습니다." in flashes(client)


def test_burn_needs_sender_address(client, admin, monkeypatch):
    ex = Exchange(sgt_amount=1.0, status=EXCHANGE_SGT_SENT)
    db.session.add(ex)
    db.session.commit()
    login(client, admin)
    client.post(f'/admin/exchanges/{ex.id}/burn')
    assert flashes(client) == ["송신자 지갑 주소를 찾을 수 없습니다."]


def test_cancel(client, admin, pending_exchange):
    login(client, admin)
    res = client.post(f'/admin/exchanges/{pending_exchange.id}/cancel', headers={'Referer': '/admin/exchange-in'})
    assert res.headers['Location'].endswith('/admin/exchange-in')
    assert db.session.get(Exchange, pending_exchange.id).status == EXCHANGE_CANCELED


def test_exchange_in_lists_only_sgt_to_won(client, admin, pending_exchange):
    tx = Transaction(amount=3.0, receiver_wallet_address="0xdef", sender_wallet_address="0xdef",
                     type=TX_EXCHANGE_OUT)
    db.session.add(tx)
    db.session.flush()
    linked = Exchange(sgt_amount=3.0, status=EXCHANGE_PENDING, transaction_id=tx.id, receiver_wallet_address="0xdef")
    tx_done = Transaction(amount=4.0, receiver_wallet_address="0x777", sender_wallet_address="0x777",
                          type=TX_EXCHANGE_OUT)
    db.session.add(tx_done)
    db.session.flush()
    done = Exchange(sgt_amount=4.0, status=EXCHANGE_COMPLETE, transaction_id=tx_done.id,
                    receiver_wallet_address="0x777")
    db.session.add_all([linked, done])
    db.session.commit()

    assert exchange_direction(linked) == 'sgt_to_won'
    assert exchange_direction(pending_exchange) == 'won_to_sgt'

    login(client, admin)
    body = client.get('/admin/exchange-in').get_data(as_text=True)
    assert "SGT → 원화 환전 요청 관리" in body
    assert '0xdef' in body
    assert '0x777' in body
    assert '0xabc' not in body


# --------------------------------------------------------------------------------
# SGT 서버 클라이언트
# --------------------------------------------------------------------------------
class FakeResponse:
    def __init__(self, status_code, data):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._data = data

    def json(self):
        return self._data


def test_sgt_client_raises_server_detail(monkeypatch):
    monkeypatch.setattr(sgt_client.requests, 'post',
                        lambda url, json=None, timeout=None: FakeResponse(400, {'detail': 'Wallet not found'}))
    with pytest.raises(sgt_client.SgtServerError) as exc:
        sgt_client.complete_sgt_to_won(7)
    assert exc.value.message == 'Wallet not found'
    assert exc.value.status_code == 400


def test_sgt_client_default_error_and_payload(monkeypatch):
    sent = {}

    def _post(url, json=None, timeout=None):
        sent['url'] = url
        sent['json'] = json
        return FakeResponse(500, {})
    monkeypatch.setattr(sgt_client.requests, 'post', _post)
    with pytest.raises(sgt_client.SgtServerError, match='Failed to process SGT burn'):
        sgt_client.process_sgt_burn(12, '0xabc', 5.0)
    assert sent['url'] == 'http://sgt.test/transactions/process-sgt-burn'
    assert sent['json']['sender_wallet_address'] == '0xabc'
    assert sent['json']['content'] == 'SGT 소각 처리 - 12'


def test_sgt_client_requires_server_url(monkeypatch):
    monkeypatch.setattr(config, 'SGT_SERVER_URL', '')
    with pytest.raises(sgt_client.SgtServerError):
        sgt_client.complete_sgt_to_won(1)


# --------------------------------------------------------------------------------
# 공지사항
# --------------------------------------------------------------------------------
def test_notices(client, admin):
    login(client, admin)
    client.post('/admin/notices', data={'title': ''})
    assert flashes(client) == ["제목을 입력해 주세요."]
    client.post('/admin/notices', data={'title': '점검 안내', 'body': '**새벽 2시**', 'is_pinned': 'on'})
    notice = Notice.query.one()
    assert notice.is_pinned is True
    client.post(f'/admin/notices/{notice.id}/delete')
    assert Notice.query.count() == 0
