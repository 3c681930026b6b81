# -------------------------------------------------------------------------------
# 관리자(admin) 라우트
# - 입점 신청 승인/반려, 승인 매장 관리(엑셀), 환전 처리, 공지사항
# app.py 에서 app.register_blueprint(admin_bp) 로 등록
# -------------------------------------------------------------------------------
import logging
from datetime import datetime
from functools import wraps
from io import BytesIO

import pandas as pd
from flask import Blueprint, request, redirect, flash, url_for, abort, send_file
from flask_login import login_required, current_user
from sqlalchemy.exc import SQLAlchemyError

import sgt_client
from layout import render_page, get_admin_nav
from models import (db, get_kst, StoreApplication, Store, User, Exchange, Transaction, Notice,
                    APPLICATION_PENDING, APPLICATION_APPROVED, APPLICATION_REJECTED, STORE_TYPE_LABELS,
                    EXCHANGE_PENDING, EXCHANGE_SGT_SENT, EXCHANGE_COMPLETE, EXCHANGE_CANCELED,
                    TX_EXCHANGE_OUT, ROLE_CUSTOMER, ROLE_STORE_OWNER)
from utils import is_admin_user, generate_kiosk_key

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')

APPLICATION_STATUS_TEXT = {APPLICATION_PENDING: '대기', APPLICATION_APPROVED: '승인', APPLICATION_REJECTED: '반려'}

EXCHANGE_STATUS_TEXT = {
    EXCHANGE_PENDING: ('대기중', 'bg-yellow-100 text-yellow-800'),
    EXCHANGE_SGT_SENT: ('SGT 전송됨', 'bg-blue-100 text-blue-800'),
    EXCHANGE_COMPLETE: ('결제완료', 'bg-green-100 text-green-800'),
    EXCHANGE_CANCELED: ('취소됨', 'bg-red-100 text-red-800'),
}


def admin_required(f):
    """관리자(admin / super_admin) 전용"""
    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not is_admin_user():
            abort(403)
        return f(*args, **kwargs)
    return decorated


def exchange_direction(exchange):
    """'sgt_to_won' (거래 유형 2) / 'won_to_sgt'"""
    if exchange.transaction is not None and exchange.transaction.type == TX_EXCHANGE_OUT:
        return 'sgt_to_won'
    return 'won_to_sgt'


@admin_bp.route('')
@admin_bp.route('/')
@admin_required
def admin_index():
    return redirect(url_for('admin.admin_store_applications'))


# -------------------------------------------------------------------------------
# 1. 입점 신청
# -------------------------------------------------------------------------------
@admin_bp.route('/applications')
@admin_required
def admin_store_applications():
    status = request.args.get('status', str(APPLICATION_PENDING))
    query = StoreApplication.query
    if status.isdigit():
        query = query.filter_by(status=int(status))
    applications = query.order_by(StoreApplication.created_at.desc()).all()
    content = get_admin_nav() + """
    <div class="max-w-6xl mx-auto py-10 px-4">
        <div class="flex gap-2 mb-6 text-xs font-black">
            {% for k, v in status_text.items() %}
            <a href="?status={{ k }}" class="px-4 py-2 rounded-xl {% if status == k|string %}bg-gray-800 text-white{% else %}bg-white border text-gray-500{% endif %}">{{ v }}</a>
            {% endfor %}
            <a href="?status=all" class="px-4 py-2 rounded-xl {% if status == 'all' %}bg-gray-800 text-white{% else %}bg-white border text-gray-500{% endif %}">전체</a>
        </div>
        <div class="space-y-4">
        {% for a in applications %}
            <div class="bg-white border rounded-3xl p-6">
                <div class="flex justify-between items-center">
                    <p class="font-black text-lg">{{ a.business_name }} <span class="text-xs text-gray-400">{{ type_labels.get(a.type, '') }}</span></p>
                    <span class="text-xs font-black">{{ status_text.get(a.status, '') }}</span>
                </div>
                <p class="text-sm text-gray-500">{{ a.owner_name or '-' }} · {{ a.phone_number or '-' }} · {{ a.email or '-' }}</p>
                <p class="text-sm text-gray-500">{{ a.address or '-' }}</p>
                <p class="text-xs text-gray-400">사업자번호 {{ a.business_number or '-' }} · 업종 {{ a.category.category_name if a.category else '-' }} · 신청자 {{ a.user.email if a.user else '-' }}</p>
                {% if a.description %}<p class="text-sm mt-2">{{ a.description }}</p>{% endif %}
                {% if a.status == 0 %}
                <div class="flex gap-2 mt-4">
                    <form method="post" action="{{ url_for('admin.admin_application_approve', application_id=a.id) }}"><button class="px-4 py-2 bg-emerald-600 text-white rounded-xl text-xs font-black">승인</button></form>
                    <form method="post" action="{{ url_for('admin.admin_application_reject', application_id=a.id) }}"><button class="px-4 py-2 bg-red-50 text-red-500 rounded-xl text-xs font-black">반려</button></form>
                </div>
                {% endif %}
            </div>
        {% else %}
            <p class="p-10 text-center text-gray-400">신청서가 없습니다.</p>
        {% endfor %}
        </div>
    </div>
    """
    return render_page(content, applications=applications, status=status, status_text=APPLICATION_STATUS_TEXT,
                       type_labels=STORE_TYPE_LABELS)


def approve_application(application):
    """신청서 승인: 상태 1 + 신청 내용으로 매장 생성 (store_type 1)"""
    store = Store(
        user_id=application.user_id,
        category_id=application.category_id,
        store_name=application.business_name,
        store_type=1,
        description=application.description,
        address=application.address,
        phone_number=application.phone_number,
        website_url=application.website,
        image_url=application.image_url,
        business_number=application.business_number,
        owner_name=application.owner_name,
        email=application.email,
        operating_hours=application.operating_hours,
        latitude=application.latitude,
        longitude=application.longitude,
        referrer_phone_number=application.referrer_phone_number,
        kiosk_key=generate_kiosk_key(),
    )
    application.status = APPLICATION_APPROVED
    owner = db.session.get(User, application.user_id) if application.user_id else None
    if owner is not None and owner.role == ROLE_CUSTOMER:
        owner.role = ROLE_STORE_OWNER
    db.session.add(store)
    db.session.commit()
    return store


@admin_bp.route('/applications/<int:application_id>/approve', methods=['POST'])
@admin_required
def admin_application_approve(application_id):
    application = db.session.get(StoreApplication, application_id) or abort(404)
    if application.status != APPLICATION_PENDING:
        flash("이미 처리된 신청서입니다.")
        return redirect(url_for('admin.admin_store_applications'))
    try:
        store = approve_application(application)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("[관리자] 신청서 %s 승인 실패", application_id)
        flash("승인 처리 중 오류가 발생했습니다.")
        return redirect(url_for('admin.admin_store_applications'))
    logger.info("[관리자] 신청서 %s 승인 -> 매장 %s", application_id, store.id)
    flash(f"'{store.store_name}' 매장이 개설되었습니다.")
    return redirect(url_for('admin.admin_store_applications'))


@admin_bp.route('/applications/<int:application_id>/reject', methods=['POST'])
@admin_required
def admin_application_reject(application_id):
    application = db.session.get(StoreApplication, application_id) or abort(404)
    application.status = APPLICATION_REJECTED
    db.session.commit()
    logger.info("[관리자] 신청서 %s 반려", application_id)
    flash("신청서를 반려했습니다.")
    return redirect(url_for('admin.admin_store_applications'))


# -------------------------------------------------------------------------------
# 2. 승인 매장
# -------------------------------------------------------------------------------
@admin_bp.route('/stores')
@admin_required
def admin_approved_stores():
    show_deleted = request.args.get('deleted') == '1'
    query = Store.query.filter(Store.deleted_at.isnot(None) if show_deleted else Store.deleted_at.is_(None))
    stores = query.order_by(Store.created_at.desc()).all()
    content = get_admin_nav() + """
    <div class="max-w-6xl mx-auto py-10 px-4">
        <div class="flex justify-between mb-6 text-xs font-black">
            <div class="flex gap-2">
                <a href="?deleted=0" class="px-4 py-2 rounded-xl {% if not show_deleted %}bg-gray-800 text-white{% else %}bg-white border{% endif %}">운영중</a>
                <a href="?deleted=1" class="px-4 py-2 rounded-xl {% if show_deleted %}bg-gray-800 text-white{% else %}bg-white border{% endif %}">삭제됨</a>
            </div>
            <a href="{{ url_for('admin.admin_stores_excel') }}" class="px-4 py-2 bg-emerald-600 text-white rounded-xl">엑셀 다운로드</a>
        </div>
        <table class="w-full bg-white border rounded-3xl text-sm">
            <thead><tr class="text-xs text-gray-400"><th class="p-4 text-left">매장</th><th>점주</th><th>연락처</th><th>개설일</th><th></th></tr></thead>
            <tbody>
            {% for s in stores %}
                <tr class="border-t">
                    <td class="p-4"><a href="/stores/{{ s.id }}" class="font-black">{{ s.store_name }}</a><p class="text-xs text-gray-400">{{ s.address or '' }}</p></td>
                    <td class="text-center">{{ s.owner.email if s.owner else '-' }}</td>
                    <td class="text-center">{{ s.phone_number or '-' }}</td>
                    <td class="text-center">{{ s.created_at.strftime('%Y-%m-%d') if s.created_at else '' }}</td>
                    <td class="text-center">
                        <form method="post" action="{{ url_for('admin.admin_store_restore' if show_deleted else 'admin.admin_store_delete', store_id=s.id) }}">
                            <button class="text-xs font-black {% if show_deleted %}text-emerald-600{% else %}text-red-500{% endif %}">{{ '복구' if show_deleted else '삭제' }}</button>
                        </form>
                    </td>
                </tr>
            {% else %}
                <tr><td colspan="5" class="p-10 text-center text-gray-400">매장이 없습니다.</td></tr>
            {% endfor %}
            </tbody>
        </table>
    </div>
    """
    return render_page(content, stores=stores, show_deleted=show_deleted)


@admin_bp.route('/stores/<int:store_id>/delete', methods=['POST'])
@admin_required
def admin_store_delete(store_id):
    store = db.session.get(Store, store_id) or abort(404)
    store.deleted_at = get_kst()
    db.session.commit()
    flash(f"'{store.store_name}' 매장을 삭제했습니다.")
    return redirect(url_for('admin.admin_approved_stores'))


@admin_bp.route('/stores/<int:store_id>/restore', methods=['POST'])
@admin_required
def admin_store_restore(store_id):
    store = db.session.get(Store, store_id) or abort(404)
    store.deleted_at = None
    db.session.commit()
    flash(f"'{store.store_name}' 매장을 복구했습니다.")
    return redirect(url_for('admin.admin_approved_stores', deleted=1))


@admin_bp.route('/stores/excel')
@admin_required
def admin_stores_excel():
    """승인 매장 목록 엑셀 다운로드"""
    stores = Store.query.filter(Store.deleted_at.is_(None)).order_by(Store.created_at.asc()).all()
    rows = []
    for i, s in enumerate(stores, 1):
        rows.append({
            '순서': i,
            '매장명': s.store_name or '',
            '업종': s.category.category_name if s.category else '',
            '대표자': s.owner_name or '',
            '사업자등록번호': s.business_number or '',
            '주소': s.address or '',
            '연락처': s.phone_number or '',
            '이메일': s.email or '',
            '점주계정': s.owner.email if s.owner else '',
            '추천인': s.referrer_phone_number or '',
            '개설일': s.created_at.strftime('%Y-%m-%d') if s.created_at else '',
        })
    if not rows:
        flash("다운로드할 매장이 없습니다.")
        return redirect(url_for('admin.admin_approved_stores'))
    df = pd.DataFrame(rows)
    out = BytesIO()
    with pd.ExcelWriter(out, engine='openpyxl') as w:
        df.to_excel(w, index=False)
    out.seek(0)
    filename = f"승인매장_{datetime.now().strftime('%m%d_%H%M')}.xlsx"
    return send_file(out, download_name=filename, as_attachment=True)


# -------------------------------------------------------------------------------
# 3. 환전
# -------------------------------------------------------------------------------
EXCHANGES_HTML = """
<div class="max-w-6xl mx-auto py-10 px-4">
    <h2 class="text-2xl font-black mb-6">{{ title }}</h2>
    <div class="space-y-4">
    {% for e in exchanges %}
        {% set direction = exchange_direction(e) %}
        <div class="bg-white border rounded-3xl p-6">
            <div class="flex justify-between items-center">
                <p class="font-black">#{{ e.id }} · {{ format_sgt_price(e.sgt_amount) }} SGT / {{ format_krw_price(e.won_amount) }}원</p>
                <div class="flex gap-2">
                    <span class="px-2 py-1 rounded-full text-xs {{ 'bg-purple-100 text-purple-800' if direction == 'sgt_to_won' else 'bg-teal-100 text-teal-800' }}">{{ 'SGT→원화' if direction == 'sgt_to_won' else '원화→SGT' }}</span>
                    <span class="px-2 py-1 rounded-full text-xs {{ status_text[e.status][1] }}">{{ status_text[e.status][0] }}</span>
                </div>
            </div>
            <p class="text-xs text-gray-400 mt-1">{{ e.created_at.strftime('%Y-%m-%d %H:%M') if e.created_at else '' }} · 수수료 {{ format_sgt_price(e.supplier_fee) }} · {{ e.policy.title if e.policy else '정책 없음' }}</p>
            {% if e.receiver_wallet_address %}<p class="text-xs font-mono mt-1">{{ e.receiver_wallet_address }}</p>{% endif %}
            {% if e.content %}<p class="text-sm mt-2">{{ e.content }}</p>{% endif %}
            <div class="flex gap-2 mt-4 text-xs font-black">
                {% if e.status == 0 %}
                <form method="post" action="{{ url_for('admin.admin_exchange_approve', exchange_id=e.id) }}" class="flex gap-2">
                    {% if not e.receiver_wallet_address %}<input name="receiver_wallet_address" placeholder="수신자 지갑 주소" class="px-3 py-2 bg-gray-50 rounded-xl font-mono" required>{% endif %}
                    <button class="px-4 py-2 bg-emerald-600 text-white rounded-xl">환전 승인 (원화→SGT)</button>
                </form>
                {% elif e.status == 1 and e.transaction_id %}
                    {% if direction == 'sgt_to_won' %}
                    <form method="post" action="{{ url_for('admin.admin_exchange_burn', exchange_id=e.id) }}"><button class="px-4 py-2 bg-gray-800 text-white rounded-xl">SGT 소각 처리</button></form>
                    {% else %}
                    <form method="post" action="{{ url_for('admin.admin_exchange_complete', exchange_id=e.id) }}"><button class="px-4 py-2 bg-blue-600 text-white rounded-xl">환전 완료 (SGT→원화)</button></form>
                    {% endif %}
                {% endif %}
                {% if e.status in (0, 1) %}
                <form method="post" action="{{ url_for('admin.admin_exchange_cancel', exchange_id=e.id) }}" onsubmit="return confirm('취소하시겠습니까?')"><button class="px-4 py-2 bg-red-50 text-red-500 rounded-xl">취소</button></form>
                {% endif %}
            </div>
        </div>
    {% else %}
        <p class="p-10 text-center text-gray-400">환전 요청이 없습니다.</p>
    {% endfor %}
    </div>
</div>
"""


@admin_bp.route('/exchanges')
@admin_required
def admin_exchanges():
    exchanges = Exchange.query.order_by(Exchange.created_at.desc()).all()
    return render_page(get_admin_nav() + EXCHANGES_HTML, exchanges=exchanges, title="환전 관리",
                       status_text=EXCHANGE_STATUS_TEXT, exchange_direction=exchange_direction)


@admin_bp.route('/exchange-in')
@admin_required
def admin_exchange_in():
    """SGT -> 원화 요청만 (연결된 거래 유형 2)"""
    exchanges = (Exchange.query.join(Transaction, Exchange.transaction_id == Transaction.id)
                 .filter(Transaction.type == TX_EXCHANGE_OUT)
                 .order_by(Exchange.created_at.desc()).all())
    return render_page(get_admin_nav() + EXCHANGES_HTML, exchanges=exchanges, title="SGT → 원화 환전 요청 관리",
                       status_text=EXCHANGE_STATUS_TEXT, exchange_direction=exchange_direction)


def _back_to_exchanges():
    return redirect(request.referrer or url_for('admin.admin_exchanges'))


@admin_bp.route('/exchanges/<int:exchange_id>/approve', methods=['POST'])
@admin_required
def admin_exchange_approve(exchange_id):
    """원화 -> SGT 승인: SGT 서버가 수신 지갑으로 SGT 전송"""
    exchange = db.session.get(Exchange, exchange_id) or abort(404)
    if exchange.status != EXCHANGE_PENDING:
        flash("대기중인 요청만 승인할 수 있습니다.")
        return _back_to_exchanges()
    receiver = exchange.receiver_wallet_address or request.form.get('receiver_wallet_address', '').strip()
    if not receiver:
        flash("지갑 주소를 입력하지 않아 취소되었습니다.")
        return _back_to_exchanges()
    try:
        result = sgt_client.approve_won_to_sgt(exchange.id, receiver, exchange.sgt_amount,
                                               content=exchange.content, created_at=exchange.created_at)
    except sgt_client.SgtServerError as e:
        flash(f"환전 승인에 실패했습니다: {e.message}")
        return _back_to_exchanges()

    exchange.receiver_wallet_address = receiver
    exchange.status = EXCHANGE_SGT_SENT
    tx_id = (result or {}).get('transaction_id')
    if tx_id and db.session.get(Transaction, tx_id):
        exchange.transaction_id = tx_id
    db.session.commit()
    logger.info("[환전] %s 원화->SGT 승인 (%s SGT -> %s)", exchange.id, exchange.sgt_amount, receiver)
    flash(f"{exchange.sgt_amount} SGT가 지갑으로 전송되었습니다.")
    return _back_to_exchanges()


@admin_bp.route('/exchanges/<int:exchange_id>/complete', methods=['POST'])
@admin_required
def admin_exchange_complete(exchange_id):
    exchange = db.session.get(Exchange, exchange_id) or abort(404)
    try:
        sgt_client.complete_sgt_to_won(exchange.id)
    except sgt_client.SgtServerError as e:
        flash(f"환전 완료에 실패했습니다: {e.message}")
        return _back_to_exchanges()
    exchange.status = EXCHANGE_COMPLETE
    db.session.commit()
    logger.info("[환전] %s SGT->원화 완료", exchange.id)
    flash("SGT → 원화 환전이 완료되었습니다.")
    return _back_to_exchanges()


@admin_bp.route('/exchanges/<int:exchange_id>/burn', methods=['POST'])
@admin_required
def admin_exchange_burn(exchange_id):
    exchange = db.session.get(Exchange, exchange_id) or abort(404)
    if not exchange.receiver_wallet_address:
        flash("송신자 지갑 주소를 찾을 수 없습니다.")
        return _back_to_exchanges()
    try:
        sgt_client.process_sgt_burn(exchange.id, exchange.receiver_wallet_address, exchange.sgt_amount,
                                    created_at=exchange.created_at)
    except sgt_client.SgtServerError as e:
        flash(f"SGT 소각에 실패했습니다: {e.message}")
        return _back_to_exchanges()
    exchange.status = EXCHANGE_COMPLETE
    db.session.commit()
    logger.info("[환전] %s SGT 소각 완료 (%s SGT)", exchange.id, exchange.sgt_amount)
    flash(f"{exchange.sgt_amount} SGT가 성공적으로 소각되었습니다.")
    return _back_to_exchanges()


@admin_bp.route('/exchanges/<int:exchange_id>/cancel', methods=['POST'])
@admin_required
def admin_exchange_cancel(exchange_id):
    exchange = db.session.get(Exchange, exchange_id) or abort(404)
    exchange.status = EXCHANGE_CANCELED
    db.session.commit()
    logger.info("[환전] %s 취소", exchange.id)
    flash("환전 요청을 취소했습니다.")
    return _back_to_exchanges()


# -------------------------------------------------------------------------------
# 4. 공지사항
# -------------------------------------------------------------------------------
@admin_bp.route('/notices', methods=['GET', 'POST'])
@admin_required
def admin_notices():
    if request.method == 'POST':
        title = request.form.get('title', '').strip()
        if not title:
            flash("제목을 입력해 주세요.")
            return redirect(url_for('admin.admin_notices'))
        db.session.add(Notice(title=title, body=request.form.get('body', ''),
                              is_pinned=bool(request.form.get('is_pinned'))))
        db.session.commit()
        flash("공지사항이 등록되었습니다.")
        return redirect(url_for('admin.admin_notices'))
    notices = Notice.query.order_by(Notice.is_pinned.desc(), Notice.created_at.desc()).all()
    content = get_admin_nav() + """
    <div class="max-w-4xl mx-auto py-10 px-4 space-y-6">
        <form method="post" class="bg-white border rounded-3xl p-6 space-y-3">
            <input name="title" placeholder="제목" class="w-full px-5 py-3 bg-gray-50 rounded-2xl" required>
            <textarea name="body" rows="6" placeholder="내용 (마크다운)" class="w-full px-5 py-3 bg-gray-50 rounded-2xl"></textarea>
            <label class="text-sm"><input type="checkbox" name="is_pinned"> 상단 고정</label>
            <button class="w-full bg-emerald-600 text-white py-3 rounded-2xl font-black">등록</button>
        </form>
        {% for n in notices %}
        <div class="bg-white border rounded-3xl p-5 flex justify-between items-center">
            <a href="/support/notices/{{ n.id }}" class="font-black">{% if n.is_pinned %}<i class="fas fa-thumbtack text-red-400"></i> {% endif %}{{ n.title }}</a>
            <form method="post" action="{{ url_for('admin.admin_notice_delete', notice_id=n.id) }}"><button class="text-xs text-red-500 font-black">삭제</button></form>
        </div>
        {% endfor %}
    </div>
    """
    return render_page(content, notices=notices)


@admin_bp.route('/notices/<int:notice_id>/delete', methods=['POST'])
@admin_required
def admin_notice_delete(notice_id):
    notice = db.session.get(Notice, notice_id) or abort(404)
    db.session.delete(notice)
    db.session.commit()
    return redirect(url_for('admin.admin_notices'))
