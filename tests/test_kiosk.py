from datetime import timedelta

import pytest

import kiosk_system
from conftest import flashes
from models import (db, get_kst, Store, KioskSession, KioskOrder, KioskOrderItemOption, StoreOptionGroup,
                    StoreOptionChoice, ProductGlobalOptionLink)


@pytest.fixture
def shot_option(products):
    """아메리카노에 연결된 '샷 추가(+0.5 SGT)' 옵션"""
    americano = products[0]
    group = StoreOptionGroup(store_id=americano.store_id, name="샷", display_order=0)
    db.session.add(group)
    db.session.flush()
    extra = StoreOptionChoice(group_id=group.id, name="샷 추가", price_impact=0.5, display_order=0)
    db.session.add(extra)
    db.session.add(ProductGlobalOptionLink(product_id=americano.id, store_option_group_id=group.id))
    db.session.commit()
    return extra


def test_entry_with_kiosk_key_redirects_to_menu(client, store):
    res = client.get('/kiosk/?key=kiosk-key-1')
    assert res.status_code == 302
    assert res.headers['Location'].endswith(f'/kiosk/{store.id}')


def test_entry_with_unknown_key(client, store):
    res = client.post('/kiosk/', data={'kiosk_key': 'nope'})
    assert res.status_code == 200
    assert '유효하지 않은 키오스크 키입니다.'.encode() in res.data


def test_device_numbers_increase_per_store(app, client, store, products):
    res = client.get(f'/kiosk/{store.id}')
    assert res.status_code == 200
    assert '아메리카노'.encode() in res.data

    # 같은 브라우저는 기존 세션 유지
    client.get(f'/kiosk/{store.id}')
    assert KioskSession.query.count() == 1

    other = app.test_client()
    other.get(f'/kiosk/{store.id}')
    numbers = sorted(ks.device_number for ks in KioskSession.query.all())
    assert numbers == [1, 2]


def test_menu_for_deleted_store_is_404(client, store):
    store.deleted_at = get_kst()
    db.session.commit()
    assert client.get(f'/kiosk/{store.id}').status_code == 404


def test_checkout_creates_pending_order_with_options(client, store, products, shot_option):
    americano, latte = products
    client.get(f'/kiosk/{store.id}')
    client.post(f'/kiosk/{store.id}/cart/add',
                data={'product_id': americano.id, 'option_ids': [shot_option.id], 'quantity': 2})
    client.post(f'/kiosk/{store.id}/cart/add', data={'product_id': latte.id})

    res = client.post(f'/kiosk/{store.id}/checkout', data={'order_type': 'kiosk_takeout'})
    assert res.status_code == 302

    order = KioskOrder.query.one()
    assert f'order_id={order.id}' in res.headers['Location']
    assert order.status == 'pending_payment'
    assert order.order_type == 'kiosk_takeout'
    # (4.5 + 0.5) x 2 + 5
    assert order.total_amount == pytest.approx(15.0)
    assert order.total_amount_krw == 15000
    assert order.device_number == 1
    assert len(order.items) == 2

    option = KioskOrderItemOption.query.one()
    assert option.option_group_name == "샷"
    assert option.option_choice_name == "샷 추가"
    assert option.price_impact == 0.5

    with client.session_transaction() as sess:
        assert f'kiosk_cart_{store.id}' not in sess


def test_cart_add_ignores_options_not_linked_to_product(client, store, products, shot_option):
    latte = products[1]
    client.post(f'/kiosk/{store.id}/cart/add', data={'product_id': latte.id, 'option_ids': [shot_option.id]})
    with client.session_transaction() as sess:
        assert sess[f'kiosk_cart_{store.id}'] == [{'product_id': latte.id, 'quantity': 1, 'option_ids': []}]


def test_cart_add_rejects_sold_out(client, store, products):
    americano = products[0]
    americano.is_sold_out = True
    db.session.commit()
    client.post(f'/kiosk/{store.id}/cart/add', data={'product_id': americano.id})
    assert flashes(client) == ["'아메리카노' 상품은 품절입니다."]


def test_checkout_drops_items_that_sold_out(client, store, products):
    americano, latte = products
    client.post(f'/kiosk/{store.id}/cart/add', data={'product_id': americano.id})
    client.post(f'/kiosk/{store.id}/cart/add', data={'product_id': latte.id})
    latte.is_sold_out = True
    db.session.commit()

    client.post(f'/kiosk/{store.id}/checkout', data={'order_type': 'kiosk_dine_in'})
    order = KioskOrder.query.one()
    assert order.total_amount_krw == 4500
    assert [i.product_id for i in order.items] == [americano.id]


def test_checkout_rejects_disabled_order_type(client, store, products):
    store.kiosk_dine_in_enabled = False
    db.session.commit()
    client.post(f'/kiosk/{store.id}/cart/add', data={'product_id': products[0].id})
    res = client.post(f'/kiosk/{store.id}/checkout', data={'order_type': 'kiosk_dine_in'})
    assert res.status_code == 302
    assert KioskOrder.query.count() == 0
    assert "주문 방식을 선택해 주세요." in flashes(client)


def test_checkout_with_empty_cart(client, store):
    res = client.post(f'/kiosk/{store.id}/checkout', data={'order_type': 'kiosk_takeout'})
    assert res.headers['Location'].endswith(f'/kiosk/{store.id}')
    assert KioskOrder.query.count() == 0


def test_delivery_goes_through_address_form(client, store, products):
    client.post(f'/kiosk/{store.id}/cart/add', data={'product_id': products[0].id})
    res = client.post(f'/kiosk/{store.id}/checkout', data={'order_type': 'kiosk_delivery'})
    assert res.headers['Location'].endswith(f'/kiosk/{store.id}/delivery-address')
    assert KioskOrder.query.count() == 0

    res = client.post(f'/kiosk/{store.id}/delivery-address', data={
        'address': '인천광역시 연수구 컨벤시아대로 1', 'address_detail': '101호', 'zip_code': '21998',
        'latitude': '37.39', 'longitude': '126.64', 'recipient_phone': '01012345678',
    })
    assert res.status_code == 302
    order = KioskOrder.query.one()
    assert order.order_type == 'kiosk_delivery'
    assert order.delivery_address_detail == '101호'
    assert order.delivery_latitude == pytest.approx(37.39)
    assert order.recipient_phone == '01012345678'


def test_delivery_requires_address_and_phone(client, store, products):
    client.post(f'/kiosk/{store.id}/cart/add', data={'product_id': products[0].id})
    client.post(f'/kiosk/{store.id}/delivery-address', data={'address': '', 'recipient_phone': ''})
    assert KioskOrder.query.count() == 0
    assert "배달 주소와 연락처를 입력해 주세요." in flashes(client)


def test_calculate_total_fee_impact(app, shot_option):
    assert kiosk_system.calculate_total_fee_impact([]) == 0
    assert kiosk_system.calculate_total_fee_impact([shot_option.id]) == 0.5
    assert kiosk_system.calculate_total_fee_impact([shot_option.id, 9999]) == 0.5


def test_fetch_product_option_fees(app, products, shot_option):
    groups = kiosk_system.fetch_product_option_fees(products[0].id)
    assert [g['name'] for g in groups] == ["샷"]
    assert groups[0]['choices'][0]['price_impact'] == 0.5
    assert kiosk_system.fetch_product_option_fees(products[1].id) == []
    assert kiosk_system.fetch_option_fee_by_id(shot_option.id)['name'] == "샷 추가"
    assert kiosk_system.fetch_option_fee_by_id(9999) is None


def test_terminate_inactive_sessions(app, store):
    now = get_kst()
    stale = KioskSession(store_id=store.id, device_number=1, status='active', last_active_at=now - timedelta(hours=5))
    fresh = KioskSession(store_id=store.id, device_number=2, status='active', last_active_at=now - timedelta(hours=1))
    gone = KioskSession(store_id=store.id, device_number=3, status='disconnected',
                        last_active_at=now - timedelta(hours=9))
    db.session.add_all([stale, fresh, gone])
    db.session.commit()

    assert kiosk_system.terminate_inactive_sessions() == [stale.id]
    assert db.session.get(KioskSession, stale.id).status == 'expired'
    assert db.session.get(KioskSession, fresh.id).status == 'active'
    assert db.session.get(KioskSession, gone.id).status == 'disconnected'
    assert kiosk_system.terminate_inactive_sessions() == []


def test_heartbeat_and_disconnect(client, store):
    assert client.post(f'/kiosk/{store.id}/session/heartbeat').status_code == 404

    client.get(f'/kiosk/{store.id}')
    res = client.post(f'/kiosk/{store.id}/session/heartbeat')
    assert res.status_code == 200
    assert res.get_json()['device_number'] == 1

    res = client.post(f'/kiosk/{store.id}/session/disconnect')
    assert res.get_json() == {'status': 'disconnected'}
    assert client.post(f'/kiosk/{store.id}/session/heartbeat').status_code == 404


@pytest.fixture
def pending_order(store):
    order = KioskOrder(store_id=store.id, order_type='kiosk_takeout', total_amount=4.5, total_amount_krw=4500)
    db.session.add(order)
    db.session.commit()
    return order


def test_payment_page_uses_order_id_as_payment_id(client, store, pending_order):
    res = client.get(f'/kiosk/{store.id}/payment?order_id={pending_order.id}')
    assert res.status_code == 200
    assert pending_order.id.encode() in res.data
    assert db.session.get(KioskOrder, pending_order.id).payment_id == pending_order.id


def test_payment_page_for_paid_order_goes_to_processing(client, store, pending_order):
    pending_order.status = 'completed'
    db.session.commit()
    res = client.get(f'/kiosk/{store.id}/payment?order_id={pending_order.id}')
    assert res.status_code == 302
    assert '/payment-processing' in res.headers['Location']


def test_payment_page_for_other_store_order_is_404(client, store, pending_order, category, owner):
    other = Store(user_id=owner.id, category_id=category.id, store_name="다른 매장")
    db.session.add(other)
    db.session.commit()
    assert client.get(f'/kiosk/{other.id}/payment?order_id={pending_order.id}').status_code == 404


def test_order_status_json(client, store, pending_order):
    res = client.get(f'/kiosk/{store.id}/orders/{pending_order.id}/status.json')
    assert res.get_json() == {'id': pending_order.id, 'status': 'pending_payment', 'total_amount_krw': 4500,
                              'paid_at': None}


def test_payment_callback_with_error_code_returns_to_checkout(client, store, pending_order):
    res = client.get(f'/kiosk/{store.id}/payment/callback',
                     query_string={'paymentId': pending_order.id, 'code': 'PAY_CANCELED', 'message': '사용자 취소'})
    assert res.headers['Location'].endswith(f'/kiosk/{store.id}/checkout')
    assert flashes(client) == ["결제가 완료되지 않았습니다: 사용자 취소"]


def test_payment_callback_posts_to_complete_api(client, store, pending_order):
    res = client.get(f'/kiosk/{store.id}/payment/callback?paymentId={pending_order.id}&txId=tx-1')
    assert res.status_code == 200
    assert b'/api/payment/complete' in res.data
    assert b'/payment-processing' in res.data


def test_payment_callback_without_payment_id(client, store):
    res = client.get(f'/kiosk/{store.id}/payment/callback')
    assert res.headers['Location'].endswith(f'/kiosk/{store.id}')


@pytest.mark.parametrize("status", ['pending_payment', 'processing', 'failed'])
def test_success_page_waits_for_completed_order(client, store, pending_order, status):
    pending_order.status = status
    db.session.commit()
    res = client.get(f'/kiosk/{store.id}/success?order_id={pending_order.id}')
    assert res.status_code == 302
    assert '/payment-processing' in res.headers['Location']


@pytest.mark.parametrize("status", ['completed', 'ready'])
def test_success_page_for_paid_order(client, store, pending_order, status):
    pending_order.status = status
    db.session.commit()
    res = client.get(f'/kiosk/{store.id}/success?order_id={pending_order.id}')
    assert res.status_code == 200
    assert "주문 완료!" in res.get_data(as_text=True)
