import base64
import hashlib
import hmac
import json
import time

import pytest

import config
import portone
from models import db, KioskOrder


@pytest.fixture
def kiosk_order(store):
    order = KioskOrder(store_id=store.id, order_type='kiosk_takeout', total_amount=4.5, total_amount_krw=4500,
                       status='pending_payment')
    db.session.add(order)
    db.session.commit()
    order.payment_id = order.id
    db.session.commit()
    return order


def fake_payment(monkeypatch, payment=None, error=None):
    calls = []

    def _get_payment(payment_id, secret=None):
        calls.append(payment_id)
        if error is not None:
            raise error
        return payment
    monkeypatch.setattr(portone, 'get_payment', _get_payment)
    return calls


def paid(total, status='PAID', payment_id='pay-1'):
    return {'id': payment_id, 'status': status, 'amount': {'total': total}}


# --------------------------------------------------------------------------------
# /api/payment/complete
# --------------------------------------------------------------------------------
def test_complete_marks_order_completed_when_amount_matches(client, kiosk_order, monkeypatch):
    calls = fake_payment(monkeypatch, paid(4500))
    res = client.post('/api/payment/complete', json={'paymentId': kiosk_order.id, 'impUid': 'imp-1'})

    assert res.status_code == 200
    assert res.get_json() == {'status': 'PAID', 'message': '결제가 성공적으로 완료되었습니다.',
                              'orderId': kiosk_order.id}
    assert calls == ['imp-1']
    order = db.session.get(KioskOrder, kiosk_order.id)
    assert order.status == 'completed'
    assert order.portone_imp_uid == 'pay-1'
    assert order.payment_provider_details['amount']['total'] == 4500
    assert order.paid_at is not None


def test_complete_without_imp_uid_looks_up_order_id(client, kiosk_order, monkeypatch):
    calls = fake_payment(monkeypatch, paid(4500))
    res = client.post('/api/payment/complete', json={'paymentId': kiosk_order.id})
    assert res.status_code == 200
    assert calls == [kiosk_order.id]


def test_complete_amount_mismatch_fails_order(client, kiosk_order, monkeypatch):
    fake_payment(monkeypatch, paid(100))
    res = client.post('/api/payment/complete', json={'paymentId': kiosk_order.id, 'impUid': 'imp-1'})

    assert res.status_code == 400
    body = res.get_json()
    assert body['status'] == 'FAILED'
    assert body['message'] == '결제 금액 불일치 (PortOne: 100, 주문: 4500), PortOne 상태: PAID'
    assert db.session.get(KioskOrder, kiosk_order.id).status == 'failed'


def test_complete_unpaid_status_fails_order(client, kiosk_order, monkeypatch):
    fake_payment(monkeypatch, paid(4500, status='FAILED'))
    res = client.post('/api/payment/complete', json={'paymentId': kiosk_order.id, 'impUid': 'imp-1'})
    assert res.status_code == 400
    assert res.get_json()['message'] == '결제 실패 (PortOne 상태: FAILED)'


@pytest.mark.parametrize("status, expected", [('completed', 'PAID'), ('failed', 'FAILED')])
def test_complete_does_not_reprocess_finished_orders(client, kiosk_order, monkeypatch, status, expected):
    kiosk_order.status = status
    db.session.commit()
    fake_payment(monkeypatch, paid(1))
    res = client.post('/api/payment/complete', json={'paymentId': kiosk_order.id, 'impUid': 'imp-1'})
    assert res.status_code == 200
    assert res.get_json()['status'] == expected
    assert db.session.get(KioskOrder, kiosk_order.id).status == status


def test_complete_rejects_bad_requests(client):
    res = client.post('/api/payment/complete', data='not json', content_type='application/json')
    assert res.status_code == 400
    res = client.post('/api/payment/complete', json={'impUid': 'imp-1'})
    assert res.status_code == 400
    assert res.get_json()['message'] == 'Missing paymentId (kioskOrderId).'


def test_complete_unknown_order(client, store, monkeypatch):
    fake_payment(monkeypatch, paid(4500))
    res = client.post('/api/payment/complete', json={'paymentId': 'no-such-order', 'impUid': 'imp-1'})
    assert res.status_code == 404


def test_complete_unrecognized_payment(client, kiosk_order, monkeypatch):
    fake_payment(monkeypatch, {'status': 'SOMETHING'})
    res = client.post('/api/payment/complete', json={'paymentId': kiosk_order.id, 'impUid': 'imp-1'})
    assert res.status_code == 500
    assert db.session.get(KioskOrder, kiosk_order.id).status == 'pending_payment'


def test_complete_gateway_error(client, kiosk_order, monkeypatch):
    fake_payment(monkeypatch, error=portone.PortOneError('Payment not found', status_code=404,
                                                         error_type='PAYMENT_NOT_FOUND'))
    res = client.post('/api/payment/complete', json={'paymentId': kiosk_order.id, 'impUid': 'imp-1'})
    assert res.status_code == 500
    assert res.get_json()['message'] == 'PortOne 오류: PAYMENT_NOT_FOUND - Payment not found'


# --------------------------------------------------------------------------------
# /api/portone/verify-payment
# --------------------------------------------------------------------------------
def test_verify_requires_ids(client):
    res = client.post('/api/portone/verify-payment', json={'imp_uid': 'imp-1'})
    assert res.status_code == 400


def test_verify_paid_with_matching_amount(client, monkeypatch):
    fake_payment(monkeypatch, paid(4500))
    res = client.post('/api/portone/verify-payment',
                      json={'imp_uid': 'imp-1', 'merchant_uid': 'm-1', 'amount_to_check': 4500})
    assert res.status_code == 200
    assert res.get_json()['verified'] is True


def test_verify_paid_without_amount_check(client, monkeypatch):
    fake_payment(monkeypatch, paid(4500))
    res = client.post('/api/portone/verify-payment', json={'imp_uid': 'imp-1', 'merchant_uid': 'm-1'})
    assert res.get_json()['verified'] is True


def test_verify_amount_mismatch(client, monkeypatch):
    fake_payment(monkeypatch, paid(4500))
    res = client.post('/api/portone/verify-payment',
                      json={'imp_uid': 'imp-1', 'merchant_uid': 'm-1', 'amount_to_check': 5000})
    assert res.status_code == 400
    assert res.get_json()['verified'] is False


def test_verify_missing_total_is_a_mismatch(client, monkeypatch):
    fake_payment(monkeypatch, {'id': 'imp-1', 'status': 'PAID', 'amount': {}})
    res = client.post('/api/portone/verify-payment',
                      json={'imp_uid': 'imp-1', 'merchant_uid': 'm-1', 'amount_to_check': 4500})
    assert res.status_code == 400
    assert res.get_json()['message'] == 'Amount mismatch after verification'


def test_verify_not_paid(client, monkeypatch):
    fake_payment(monkeypatch, paid(4500, status='READY'))
    res = client.post('/api/portone/verify-payment', json={'imp_uid': 'imp-1', 'merchant_uid': 'm-1'})
    assert res.status_code == 200
    assert res.get_json()['message'] == 'Payment not completed. Status: READY'


def test_verify_passes_gateway_status_through(client, monkeypatch):
    fake_payment(monkeypatch, error=portone.PortOneError('not found', status_code=404))
    res = client.post('/api/portone/verify-payment', json={'imp_uid': 'imp-1', 'merchant_uid': 'm-1'})
    assert res.status_code == 404
    assert res.get_json()['verified'] is False


def test_verify_unexpected_error(client, monkeypatch):
    fake_payment(monkeypatch, error=portone.PortOneError('connection refused'))
    res = client.post('/api/portone/verify-payment', json={'imp_uid': 'imp-1', 'merchant_uid': 'm-1'})
    assert res.status_code == 500


# --------------------------------------------------------------------------------
# PortOne client
# --------------------------------------------------------------------------------
class FakeResponse:
    def __init__(self, status_code, data):
        self.status_code = status_code
        self._data = data

    def json(self):
        return self._data


def test_get_payment_wraps_error_response(monkeypatch):
    monkeypatch.setattr(portone.requests, 'get', lambda *a, **kw: FakeResponse(
        404, {'type': 'PAYMENT_NOT_FOUND', 'message': '결제 건이 존재하지 않습니다.'}))
    with pytest.raises(portone.PortOneError) as exc:
        portone.get_payment('pay-1')
    assert exc.value.status_code == 404
    assert exc.value.error_type == 'PAYMENT_NOT_FOUND'


def test_get_payment_sends_secret(monkeypatch):
    seen = {}

    def _get(url, headers=None, timeout=None):
        seen['url'] = url
        seen['headers'] = headers
        return FakeResponse(200, paid(4500))
    monkeypatch.setattr(portone.requests, 'get', _get)
    payment = portone.get_payment('pay/1', secret='s3cret')
    assert payment['status'] == 'PAID'
    assert seen['url'].endswith('/payments/pay%2F1')
    assert seen['headers']['Authorization'] == 'PortOne s3cret'


# --------------------------------------------------------------------------------
# /api/payment/webhook
# --------------------------------------------------------------------------------
def test_webhook_marks_order_processing(client, kiosk_order):
    res = client.post('/api/payment/webhook',
                      json={'type': 'Transaction.Paid', 'data': {'paymentId': kiosk_order.id}})
    assert res.status_code == 200
    assert res.get_json() == {'status': 'success'}
    assert db.session.get(KioskOrder, kiosk_order.id).status == 'processing'


def test_webhook_ignores_unknown_payment(client, kiosk_order):
    res = client.post('/api/payment/webhook', json={'data': {'paymentId': 'other'}})
    assert res.status_code == 200
    assert db.session.get(KioskOrder, kiosk_order.id).status == 'pending_payment'


def test_webhook_invalid_json(client):
    res = client.post('/api/payment/webhook', data='{broken', content_type='application/json')
    assert res.status_code == 400


def _signed_headers(secret, body, timestamp=None):
    msg_id = 'msg_1'
    timestamp = str(timestamp or int(time.time()))
    key = base64.b64decode(secret[len('whsec_'):])
    sig = base64.b64encode(hmac.new(key, f"{msg_id}.{timestamp}.{body}".encode(), hashlib.sha256).digest()).decode()
    return {'webhook-id': msg_id, 'webhook-timestamp': timestamp, 'webhook-signature': f"v1,{sig}"}


def test_webhook_signature_verified_when_secret_set(client, kiosk_order, monkeypatch):
    secret = 'whsec_' + base64.b64encode(b'webhook-test-key').decode()
    monkeypatch.setattr(config, 'PORTONE_WEBHOOK_SECRET', secret)
    body = json.dumps({'type': 'Transaction.Paid', 'data': {'paymentId': kiosk_order.id}})

    res = client.post('/api/payment/webhook', data=body, content_type='application/json',
                      headers=_signed_headers(secret, body))
    assert res.status_code == 200
    assert db.session.get(KioskOrder, kiosk_order.id).status == 'processing'

    forged = client.post('/api/payment/webhook', data=body, content_type='application/json',
                         headers=_signed_headers('whsec_' + base64.b64encode(b'other').decode(), body))
    assert forged.status_code == 400


def test_webhook_rejects_stale_timestamp():
    secret = 'whsec_' + base64.b64encode(b'webhook-test-key').decode()
    body = '{}'
    headers = _signed_headers(secret, body, timestamp=int(time.time()) - 3600)
    with pytest.raises(portone.WebhookVerificationError):
        portone.verify_webhook(secret, body, headers)
