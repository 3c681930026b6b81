# --------------------------------------------------------------------------------
# SGT 지갑 조회 (NFC 카드 / 지갑 주소), 환전 요청, 매장 리뷰
# --------------------------------------------------------------------------------
import logging

from flask import Blueprint, request, redirect, flash, url_for
from flask_login import login_required, current_user
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

import config
from layout import render_page
from models import db, Wallet, Transaction, Exchange, Policy, Review, Store, EXCHANGE_PENDING
from utils import normalize_nfc_id, sgt_to_krw, parse_float, parse_int

logger = logging.getLogger(__name__)

wallet_bp = Blueprint('wallet', __name__)

RECENT_TRANSACTION_LIMIT = 10

TX_TYPE_TEXT = {0: '오프라인 결제', 1: '온라인 결제', 2: '환전(출금)', 3: '환전(입금)', 4: 'TVL'}


class WalletLookupError(Exception):
    pass


def find_wallet(nfc_id=None, wallet_address=None):
    """NFC ID 또는 지갑 주소로 지갑 조회. 실패 시 WalletLookupError"""
    if nfc_id:
        wallet = Wallet.query.filter_by(nfc_id=normalize_nfc_id(nfc_id)).first()
        if wallet is None:
            raise WalletLookupError("등록되지 않은 SGT 카드입니다.")
    elif wallet_address:
        wallet = Wallet.query.filter_by(wallet_address=wallet_address.strip()).first()
        if wallet is None:
            raise WalletLookupError("등록되지 않은 지갑입니다.")
    else:
        raise WalletLookupError("카드 번호 또는 지갑 주소를 입력해 주세요.")
    if not wallet.wallet_address:
        raise WalletLookupError("유효하지 않은 지갑입니다.")
    return wallet


def recent_transactions(wallet_address, limit=RECENT_TRANSACTION_LIMIT):
    return (Transaction.query
            .filter(or_(Transaction.sender_wallet_address == wallet_address,
                        Transaction.receiver_wallet_address == wallet_address))
            .order_by(Transaction.created_at.desc())
            .limit(limit).all())


def wallet_summary(wallet):
    balance = wallet.balance or 0
    return {
        'balance': f"{balance:.2f}",
        'balance_krw': sgt_to_krw(balance, config.SGT_EXCHANGE_RATE),
        'transactions': recent_transactions(wallet.wallet_address),
    }


@wallet_bp.route('/wallet', methods=['GET', 'POST'])
def wallet_view():
    params = request.form if request.method == 'POST' else request.args
    nfc_id = params.get('nfc_id', '').strip()
    address = params.get('wallet_address', '').strip()
    wallet, summary, error = None, None, None
    if nfc_id or address:
        try:
            wallet = find_wallet(nfc_id=nfc_id, wallet_address=address)
            summary = wallet_summary(wallet)
        except WalletLookupError as e:
            error = str(e)
            wallet = None

    content = """
    <div class="max-w-xl mx-auto py-12 px-4 space-y-6">
        <h2 class="text-2xl font-black">SGT 지갑</h2>
        <form method="get" class="bg-white border rounded-3xl p-6 space-y-3">
            <input name="nfc_id" value="{{ nfc_id }}" placeholder="SGT 카드 번호 (NFC)" class="w-full px-5 py-3 bg-gray-50 rounded-2xl font-mono">
            <p class="text-center text-xs text-gray-400">또는</p>
            <input name="wallet_address" value="{{ address }}" placeholder="지갑 주소" class="w-full px-5 py-3 bg-gray-50 rounded-2xl font-mono">
            <button class="w-full bg-emerald-600 text-white py-3 rounded-2xl font-black">조회</button>
        </form>
        {% if error %}<div class="bg-red-50 text-red-600 p-5 rounded-2xl font-bold">{{ error }}</div>{% endif %}
        {% if wallet %}
        <div class="bg-gray-900 text-white rounded-3xl p-8">
            <p class="text-xs text-gray-400">{{ wallet.wallet_name or '내 지갑' }}</p>
            <p class="text-4xl font-black mt-2">{{ summary.balance }} <span class="text-lg">SGT</span></p>
            <p class="text-sm text-gray-400 mt-1">≈ {{ format_krw_price(summary.balance_krw) }}원</p>
            <p class="text-[10px] font-mono text-gray-500 mt-4 break-all">{{ wallet.wallet_address }}</p>
        </div>
        <div class="bg-white border rounded-3xl p-6">
            <h3 class="font-black mb-4">최근 거래</h3>
            {% for t in summary.transactions %}
            <div class="flex justify-between py-3 border-t text-sm">
                <div>
                    <p class="font-bold">{{ tx_type_text.get(t.type, '거래') }}</p>
                    <p class="text-xs text-gray-400">{{ t.created_at.strftime('%Y-%m-%d %H:%M') if t.created_at else '' }}</p>
                </div>
                {% if t.receiver_wallet_address == wallet.wallet_address %}
                <p class="font-black text-emerald-600">+{{ format_sgt_price(t.amount) }}</p>
                {% else %}
                <p class="font-black text-red-500">-{{ format_sgt_price(t.amount) }}</p>
                {% endif %}
            </div>
            {% else %}
            <p class="text-sm text-gray-400">거래 내역이 없습니다.</p>
            {% endfor %}
        </div>
        <form method="post" action="{{ url_for('wallet.wallet_exchange_request') }}" class="bg-white border rounded-3xl p-6 space-y-3">
            <h3 class="font-black">원화로 SGT 구매 요청</h3>
            <input type="hidden" name="wallet_address" value="{{ wallet.wallet_address }}">
            <input name="sgt_amount" type="number" step="0.01" min="0" placeholder="구매할 SGT 수량" class="w-full px-5 py-3 bg-gray-50 rounded-2xl" required>
            <p class="text-xs text-gray-400">1 SGT = {{ format_krw_price(rate) }}원</p>
            <button class="w-full bg-gray-800 text-white py-3 rounded-2xl font-black">환전 요청</button>
        </form>
        {% endif %}
    </div>
    """
    return render_page(content, wallet=wallet, summary=summary, error=error, nfc_id=nfc_id, address=address,
                       tx_type_text=TX_TYPE_TEXT, rate=config.SGT_EXCHANGE_RATE)


def create_exchange_request(wallet, sgt_amount, user_id=None):
    """원화 -> SGT 환전 요청 (대기 상태). 금액은 현재 환율로 환산"""
    policy = Policy.query.order_by(Policy.created_at.desc()).first()
    exchange = Exchange(
        user_id=user_id,
        policy_id=policy.id if policy else None,
        liquid_supplier_id=policy.liquid_supplier_id if policy else None,
        sgt_amount=sgt_amount,
        won_amount=sgt_to_krw(sgt_amount, config.SGT_EXCHANGE_RATE),
        supplier_fee=(policy.baseline_fee or 0) if policy else 0,
        status=EXCHANGE_PENDING,
        receiver_wallet_address=wallet.wallet_address,
    )
    db.session.add(exchange)
    db.session.commit()
    return exchange


@wallet_bp.route('/wallet/exchange-request', methods=['POST'])
def wallet_exchange_request():
    address = request.form.get('wallet_address', '').strip()
    sgt_amount = parse_float(request.form.get('sgt_amount'))
    back = redirect(url_for('wallet.wallet_view', wallet_address=address))
    if sgt_amount is None or sgt_amount <= 0:
        flash("환전할 SGT 수량을 올바르게 입력해 주세요.")
        return back
    try:
        wallet = find_wallet(wallet_address=address)
    except WalletLookupError as e:
        flash(str(e))
        return back
    user_id = current_user.id if current_user.is_authenticated else None
    try:
        exchange = create_exchange_request(wallet, sgt_amount, user_id=user_id)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("[지갑] 환전 요청 저장 실패 (%s)", address)
        flash("환전 요청 중 오류가 발생했습니다.")
        return back
    logger.info("[지갑] 환전 요청 %s: %s SGT -> %s", exchange.id, sgt_amount, address)
    flash("환전 요청이 접수되었습니다. 입금 확인 후 SGT가 지급됩니다.")
    return back


# --------------------------------------------------------------------------------
# 리뷰 (같은 회원 + 주문 + 매장이면 수정)
# --------------------------------------------------------------------------------
def save_review(user_id, store_id, order_id, rating, review_text):
    review = Review.query.filter_by(user_id=user_id, order_id=order_id, store_id=store_id).first()
    if review is None:
        review = Review(user_id=user_id, order_id=order_id, store_id=store_id)
        db.session.add(review)
    review.rating = rating
    review.review_text = review_text
    db.session.commit()
    return review


@wallet_bp.route('/reviews', methods=['POST'])
@login_required
def review_submit():
    store_id = parse_int(request.form.get('store_id'))
    order_id = parse_int(request.form.get('order_id'))
    rating = parse_int(request.form.get('rating'))
    store = db.session.get(Store, store_id) if store_id else None
    if store is None:
        flash("매장을 찾을 수 없습니다.")
        return redirect(request.referrer or '/')
    back = redirect(url_for('store_details', store_id=store.id))
    if rating is None or not 1 <= rating <= 5:
        flash("평점은 1~5 사이로 선택해 주세요.")
        return back
    try:
        save_review(current_user.id, store.id, order_id, rating, request.form.get('review_text', '').strip())
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("[리뷰] 저장 실패 (store=%s, order=%s)", store.id, order_id)
        flash("리뷰 저장 중 오류가 발생했습니다.")
        return back
    flash("리뷰가 등록되었습니다.")
    return back
