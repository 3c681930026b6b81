from datetime import timedelta

import pytest

from conftest import login, flashes
from models import db, get_kst, Wallet, Transaction, Exchange, Policy, Review, EXCHANGE_PENDING
from wallet_system import find_wallet, recent_transactions, wallet_summary, save_review, WalletLookupError


@pytest.fixture
def wallet(app):
    w = Wallet(wallet_address="0xwallet", nfc_id="04A1B2C3", wallet_name="내 카드", balance=12.5)
    db.session.add(w)
    db.session.commit()
    return w


def test_find_wallet_by_nfc_is_normalized(wallet):
    assert find_wallet(nfc_id="04:a1:b2:c3").id == wallet.id
    assert find_wallet(wallet_address=" 0xwallet ").id == wallet.id


@pytest.mark.parametrize("kwargs, message", [
    ({'nfc_id': 'FFFF'}, "등록되지 않은 SGT 카드입니다."),
    ({'wallet_address': '0xnone'}, "등록되지 않은 지갑입니다."),
    ({}, "카드 번호 또는 지갑 주소를 입력해 주세요."),
])
def test_find_wallet_errors(wallet, kwargs, message):
    with pytest.raises(WalletLookupError, match=message):
        find_wallet(**kwargs)


def test_wallet_without_address_is_invalid(app):
    db.session.add(Wallet(nfc_id="0000AAAA", wallet_address=None))
    db.session.commit()
    with pytest.raises(WalletLookupError, match="유효하지 않은 지갑입니다."):
        find_wallet(nfc_id="0000AAAA")


def test_recent_transactions_limit_and_order(wallet):
    base = get_kst() - timedelta(days=1)
    for i in range(12):
        db.session.add(Transaction(amount=i, receiver_wallet_address="0xwallet", sender_wallet_address="0xshop",
                                   created_at=base + timedelta(minutes=i)))
    db.session.add(Transaction(amount=99, receiver_wallet_address="0xother", sender_wallet_address="0xwallet",
                               created_at=base + timedelta(hours=2)))
    db.session.add(Transaction(amount=77, receiver_wallet_address="0xother", sender_wallet_address="0xshop",
                               created_at=base + timedelta(hours=3)))
    db.session.commit()

    txs = recent_transactions("0xwallet")
    assert len(txs) == 10
    assert [t.amount for t in txs[:3]] == [99, 11, 10]


def test_wallet_summary(wallet):
    summary = wallet_summary(wallet)
    assert summary["balance"] == "12.50"
    assert summary["balance_krw"] == 12500
    assert summary['transactions'] == []


def test_wallet_summary_converts_unrounded_balance(app):
    w = Wallet(wallet_address="0xdust", balance=0.0006)
    db.session.add(w)
    db.session.commit()
    summary = wallet_summary(w)
    assert summary['balance'] == "0.00"
    assert summary['balance_krw'] == 1


def test_wallet_page(client, wallet):
    res = client.get('/wallet?nfc_id=04a1b2c3')
    assert res.status_code == 200
    assert b"12.50" in res.data
    assert b'0xwallet' in res.data

    res = client.post('/wallet', data={'nfc_id': 'DEADBEEF'})
    assert '등록되지 않은 SGT 카드입니다.'.encode() in res.data


def test_exchange_request(client, wallet):
    policy = Policy(title="기본 정책", baseline_fee=0.3)
    db.session.add(policy)
    db.session.commit()

    res = client.post('/wallet/exchange-request', data={'wallet_address': '0xwallet', 'sgt_amount': '5'})
    assert res.status_code == 302
    ex = Exchange.query.one()
    assert ex.status == EXCHANGE_PENDING
    assert ex.sgt_amount == 5
    assert ex.won_amount == 5000
    assert ex.supplier_fee == 0.3
    assert ex.policy_id == policy.id
    assert ex.receiver_wallet_address == '0xwallet'
    assert ex.transaction_id is None
    assert flashes(client) == ["환전 요청이 접수되었습니다. 입금 확인 후 SGT가 지급됩니다."]


@pytest.mark.parametrize("amount", ['', '0', '-1', 'abc', 'nan', 'inf'])
def test_exchange_request_rejects_bad_amount(client, wallet, amount):
    client.post('/wallet/exchange-request', data={'wallet_address': '0xwallet', 'sgt_amount': amount})
    assert Exchange.query.count() == 0
    assert flashes(client) == ["환전할 SGT 수량을 올바르게 입력해 주세요."]


def test_exchange_request_unknown_wallet(client, app):
    client.post('/wallet/exchange-request', data={'wallet_address': '0xghost', 'sgt_amount': '1'})
    assert Exchange.query.count() == 0
    assert flashes(client) == ["등록되지 않은 지갑입니다."]


# --------------------------------------------------------------------------------
# 리뷰
# --------------------------------------------------------------------------------
def test_review_is_created_then_updated(client, customer, store):
    login(client, customer)
    res = client.post('/reviews', data={'store_id': store.id, 'rating': '4', 'review_text': '맛있어요'})
    assert res.headers['Location'].endswith(f'/stores/{store.id}')
    client.post('/reviews', data={'store_id': store.id, 'rating': '5', 'review_text': '또 왔어요'})

    review = Review.query.one()
    assert (review.rating, review.review_text) == (5, '또 왔어요')
    assert '또 왔어요'.encode() in client.get(f'/stores/{store.id}').data


def test_save_review_keeps_separate_orders(app, customer, store):
    save_review(customer.id, store.id, None, 3, 'a')
    save_review(customer.id, store.id, 7, 4, 'b')
    assert Review.query.count() == 2


@pytest.mark.parametrize("rating", ['0', '6', ''])
def test_review_invalid_rating(client, customer, store, rating):
    login(client, customer)
    client.post('/reviews', data={'store_id': store.id, 'rating': rating})
    assert Review.query.count() == 0
    assert flashes(client) == ["평점은 1~5 사이로 선택해 주세요."]


def test_review_unknown_store(client, customer):
    login(client, customer)
    client.post('/reviews', data={'store_id': '999', 'rating': '5'})
    assert flashes(client) == ["매장을 찾을 수 없습니다."]


def test_review_requires_login(client, store):
    res = client.post('/reviews', data={'store_id': store.id, 'rating': '5'})
    assert res.status_code == 302
    assert '/login' in res.headers['Location']
