# --------------------------------------------------------------------------------
# 매장 관리 (점주 / 관리자)
# - 입점 신청, 매장 정보·소개글 수정
# - 상품 CRUD, 상품 옵션
# - 주문 관리 (상태 0~5, 전이 검증 없음), 통계, 엑셀
# - 쿠폰, 키오스크 설정 (상품/옵션/세션/주문/매출)
# --------------------------------------------------------------------------------
import logging
from datetime import datetime
from io import BytesIO

import pandas as pd
from flask import Blueprint, request, redirect, jsonify, flash, url_for, abort, send_file
from flask_login import login_required, current_user
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from juso import ADDRESS_POPUP_SCRIPT
from layout import render_page, get_store_nav
from models import (db, get_kst, Store, StoreApplication, Category, Product, ProductOptionGroup,
                    ProductOptionChoice, StoreOptionGroup, StoreOptionChoice, ProductGlobalOptionLink, Order,
                    OrderItem, Coupon, KioskSession, KioskOrder, PRODUCT_ACTIVE, PRODUCT_INACTIVE,
                    PRODUCT_DELETED, ORDER_STATUSES, KIOSK_ORDER_STATUSES, APPLICATION_PENDING, STORE_TYPE_LABELS)
from utils import (check_store_permission, save_uploaded_image, render_markdown, generate_kiosk_key,
                   get_status_text, parse_int, parse_float, KIOSK_STATUS_TEXT, KIOSK_ORDER_TYPE_TEXT)

logger = logging.getLogger(__name__)

store_bp = Blueprint('store', __name__, url_prefix='/stores')


def _get_managed_store(store_id):
    """관리 권한이 있는 매장 (없으면 404, 권한 없으면 403)"""
    store = db.session.get(Store, store_id)
    if store is None or store.deleted_at is not None:
        abort(404)
    if not check_store_permission(store):
        abort(403)
    return store


def _get_store_product(store, product_id):
    product = db.session.get(Product, product_id)
    if product is None or product.store_id != store.id or product.status == PRODUCT_DELETED:
        abort(404)
    return product


def render_store_page(store, content, **context):
    return render_page(get_store_nav() + content, store=store, **context)


# --------------------------------------------------------------------------------
# 1. 입점 신청 / 매장 정보
# --------------------------------------------------------------------------------
@store_bp.route('/register', methods=['GET', 'POST'])
@login_required
def store_register():
    """입점 신청서 작성 (관리자 승인 후 매장 생성)"""
    if request.method == 'POST':
        business_name = request.form.get('business_name', '').strip()
        address = request.form.get('address', '').strip()
        phone_number = request.form.get('phone_number', '').strip()
        if not business_name or not address or not phone_number:
            flash("상호명, 주소, 연락처는 필수 입력 항목입니다.")
            return redirect(url_for('store.store_register'))
        try:
            image_url = save_uploaded_image(request.files.get('image'), prefix='application')
        except (OSError, ValueError):
            logger.exception("[입점신청] 이미지 저장 실패")
            flash("이미지 업로드에 실패했습니다. 다른 이미지를 선택해 주세요.")
            return redirect(url_for('store.store_register'))
        application = StoreApplication(
            user_id=current_user.id,
            business_name=business_name,
            owner_name=request.form.get('owner_name', '').strip(),
            business_number=request.form.get('business_number', '').strip(),
            phone_number=phone_number,
            email=request.form.get('email', '').strip() or current_user.email,
            address=address,
            latitude=parse_float(request.form.get('latitude')),
            longitude=parse_float(request.form.get('longitude')),
            category_id=parse_int(request.form.get('category_id')),
            description=request.form.get('description', '').strip(),
            operating_hours=request.form.get('operating_hours', '').strip(),
            website=request.form.get('website', '').strip(),
            referrer_phone_number=request.form.get('referrer_phone_number', '').strip(),
            image_url=image_url,
            type=parse_int(request.form.get('type'), 1),
            status=APPLICATION_PENDING,
        )
        db.session.add(application)
        db.session.commit()
        logger.info("[입점신청] 신규 신청 %s (%s)", application.id, business_name)
        flash("입점 신청이 접수되었습니다. 관리자 승인 후 매장이 개설됩니다.")
        return redirect(url_for('profile'))

    categories = Category.query.order_by(Category.id.asc()).all()
    content = """
    <div class="max-w-2xl mx-auto py-12 px-4">
        <h2 class="text-2xl font-black mb-8">입점 신청</h2>
        <form method="post" enctype="multipart/form-data" class="bg-white rounded-[2rem] p-8 shadow-sm border space-y-4">
            <input name="business_name" placeholder="상호명 *" class="w-full px-5 py-3 bg-gray-50 rounded-2xl" required>
            <input name="owner_name" placeholder="대표자명" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="business_number" placeholder="사업자등록번호" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="phone_number" placeholder="연락처 *" class="w-full px-5 py-3 bg-gray-50 rounded-2xl" required>
            <input name="email" placeholder="이메일" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <div class="flex gap-2">
                <input id="address" name="address" placeholder="주소 *" readonly class="flex-1 px-5 py-3 bg-gray-50 rounded-2xl" required>
                <button type="button" onclick="openJusoPopup()" class="px-5 bg-gray-800 text-white rounded-2xl text-sm">주소 검색</button>
            </div>
            <input id="latitude" name="latitude" type="hidden">
            <input id="longitude" name="longitude" type="hidden">
            <select name="category_id" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
                <option value="">업종 선택</option>
                {% for c in categories %}<option value="{{ c.id }}">{{ c.category_name }}</option>{% endfor %}
            </select>
            <select name="type" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
                {% for k, v in type_labels.items() %}<option value="{{ k }}" {% if k == 1 %}selected{% endif %}>{{ v }}</option>{% endfor %}
            </select>
            <textarea name="description" placeholder="매장 소개" class="w-full px-5 py-3 bg-gray-50 rounded-2xl"></textarea>
            <input name="operating_hours" placeholder="영업시간" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="website" placeholder="웹사이트" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="referrer_phone_number" placeholder="추천인 연락처" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <input type="file" name="image" accept="image/*" class="w-full text-sm">
            <button class="w-full bg-emerald-600 text-white py-4 rounded-2xl font-black">신청하기</button>
        </form>
    </div>
    """ + ADDRESS_POPUP_SCRIPT
    return render_page(content, categories=categories, type_labels=STORE_TYPE_LABELS)


STORE_EDIT_FIELDS = ('store_name', 'description', 'address', 'phone_number', 'website_url', 'owner_name',
                     'business_number', 'email', 'operating_hours', 'store_wallet_address')


@store_bp.route('/edit/<int:store_id>', methods=['GET', 'POST'])
@login_required
def store_edit(store_id):
    store = _get_managed_store(store_id)
    if request.method == 'POST':
        if not request.form.get('store_name', '').strip():
            flash("매장명을 입력해 주세요.")
            return redirect(url_for('store.store_edit', store_id=store_id))
        for field in STORE_EDIT_FIELDS:
            if field in request.form:
                setattr(store, field, request.form.get(field, '').strip())
        lat, lng = parse_float(request.form.get('latitude')), parse_float(request.form.get('longitude'))
        if lat is not None and lng is not None:
            store.latitude, store.longitude = lat, lng
        store.category_id = parse_int(request.form.get('category_id'), store.category_id)
        try:
            image_url = save_uploaded_image(request.files.get('image'), prefix=f'store{store.id}')
        except (OSError, ValueError):
            logger.exception("[매장] %s 이미지 저장 실패", store.id)
            flash("이미지 업로드에 실패했습니다.")
            return redirect(url_for('store.store_edit', store_id=store_id))
        if image_url:
            store.image_url = image_url
        db.session.commit()
        flash("매장 정보가 저장되었습니다.")
        return redirect(url_for('store.store_edit', store_id=store_id))

    categories = Category.query.order_by(Category.id.asc()).all()
    content = """
    <div class="max-w-3xl mx-auto py-10 px-4">
        <h2 class="text-2xl font-black mb-6">매장 정보 수정</h2>
        <form method="post" enctype="multipart/form-data" class="bg-white rounded-[2rem] p-8 shadow-sm border space-y-4">
            <input name="store_name" value="{{ store.store_name }}" class="w-full px-5 py-3 bg-gray-50 rounded-2xl" required>
            <textarea name="description" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">{{ store.description or '' }}</textarea>
            <div class="flex gap-2">
                <input id="address" name="address" value="{{ store.address or '' }}" readonly class="flex-1 px-5 py-3 bg-gray-50 rounded-2xl">
                <button type="button" onclick="openJusoPopup()" class="px-5 bg-gray-800 text-white rounded-2xl text-sm">주소 검색</button>
            </div>
            <input id="latitude" name="latitude" type="hidden" value="{{ store.latitude or '' }}">
            <input id="longitude" name="longitude" type="hidden" value="{{ store.longitude or '' }}">
            <select name="category_id" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
                {% for c in categories %}<option value="{{ c.id }}" {% if c.id == store.category_id %}selected{% endif %}>{{ c.category_name }}</option>{% endfor %}
            </select>
            <input name="phone_number" value="{{ store.phone_number or '' }}" placeholder="연락처" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="website_url" value="{{ store.website_url or '' }}" placeholder="웹사이트" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="owner_name" value="{{ store.owner_name or '' }}" placeholder="대표자명" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="business_number" value="{{ store.business_number or '' }}" placeholder="사업자등록번호" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="email" value="{{ store.email or '' }}" placeholder="이메일" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="operating_hours" value="{{ store.operating_hours or '' }}" placeholder="영업시간" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="store_wallet_address" value="{{ store.store_wallet_address or '' }}" placeholder="매장 지갑 주소" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            {% if store.image_url %}<img src="{{ store.image_url }}" class="w-32 h-32 object-cover rounded-2xl">{% endif %}
            <input type="file" name="image" accept="image/*" class="w-full text-sm">
            <button class="w-full bg-emerald-600 text-white py-4 rounded-2xl font-black">저장</button>
        </form>
    </div>
    """ + ADDRESS_POPUP_SCRIPT
    return render_store_page(store, content, categories=categories)


@store_bp.route('/<int:store_id>/markdown-edit', methods=['GET', 'POST'])
@login_required
def store_markdown_edit(store_id):
    store = _get_managed_store(store_id)
    if request.method == 'POST':
        store.markdown_content = request.form.get('markdown_content', '')
        db.session.commit()
        flash("매장 소개글이 저장되었습니다.")
        return redirect(url_for('store.store_markdown_edit', store_id=store_id))
    content = """
    <div class="max-w-5xl mx-auto py-10 px-4 grid md:grid-cols-2 gap-6">
        <form method="post" class="space-y-4">
            <textarea id="md" name="markdown_content" rows="24" class="w-full p-5 bg-white border rounded-2xl font-mono text-sm">{{ store.markdown_content or '' }}</textarea>
            <button class="w-full bg-emerald-600 text-white py-4 rounded-2xl font-black">저장</button>
        </form>
        <div id="preview" class="prose bg-white border rounded-2xl p-6">{{ render_markdown(store.markdown_content)|safe }}</div>
    </div>
    <script>
    document.getElementById('md').addEventListener('input', function (e) {
        fetch("{{ url_for('store.store_markdown_preview', store_id=store.id) }}", {
            method: 'POST', headers: {'Content-Type': 'application/json'},
            body: JSON.stringify({markdown: e.target.value})
        }).then(function (r) { return r.json(); })
          .then(function (d) { document.getElementById('preview').innerHTML = d.html; });
    });
    </script>
    """
    return render_store_page(store, content)


@store_bp.route('/<int:store_id>/markdown-preview', methods=['POST'])
@login_required
def store_markdown_preview(store_id):
    _get_managed_store(store_id)
    body = request.get_json(silent=True) or {}
    return jsonify({'html': render_markdown(body.get('markdown', ''))})


# --------------------------------------------------------------------------------
# 2. 상품 관리
# --------------------------------------------------------------------------------
def _apply_product_form(product, form):
    product.product_name = form.get('product_name', '').strip()
    product.description = form.get('description', '').strip()
    product.won_price = parse_int(form.get('won_price'), 0)
    product.sgt_price = parse_float(form.get('sgt_price'))
    product.is_sgt_product = bool(form.get('is_sgt_product'))
    product.won_delivery_fee = parse_int(form.get('won_delivery_fee'), 0)
    product.won_special_delivery_fee = parse_int(form.get('won_special_delivery_fee'), 0)
    product.sgt_delivery_fee = parse_float(form.get('sgt_delivery_fee'), 0)
    product.sgt_special_delivery_fee = parse_float(form.get('sgt_special_delivery_fee'), 0)
    product.markdown_content = form.get('markdown_content', '')
    status = parse_int(form.get('status'), PRODUCT_ACTIVE)
    product.status = status if status in (PRODUCT_ACTIVE, PRODUCT_INACTIVE) else PRODUCT_ACTIVE


PRODUCT_FORM_HTML = """
<div class="max-w-3xl mx-auto py-10 px-4">
    <h2 class="text-2xl font-black mb-6">{{ '상품 수정' if product else '상품 등록' }}</h2>
    <form method="post" enctype="multipart/form-data" class="bg-white rounded-[2rem] p-8 shadow-sm border space-y-4">
        <input name="product_name" value="{{ product.product_name if product else '' }}" placeholder="상품명 *" class="w-full px-5 py-3 bg-gray-50 rounded-2xl" required>
        <textarea name="description" placeholder="설명" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">{{ product.description if product and product.description else '' }}</textarea>
        <div class="grid grid-cols-2 gap-4">
            <input name="won_price" value="{{ product.won_price if product else '' }}" placeholder="원화 가격" class="px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="sgt_price" value="{{ product.sgt_price if product and product.sgt_price is not none else '' }}" placeholder="SGT 가격" class="px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="won_delivery_fee" value="{{ product.won_delivery_fee if product else 0 }}" placeholder="배송비(원)" class="px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="won_special_delivery_fee" value="{{ product.won_special_delivery_fee if product else 0 }}" placeholder="도서산간 배송비(원)" class="px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="sgt_delivery_fee" value="{{ product.sgt_delivery_fee if product else 0 }}" placeholder="배송비(SGT)" class="px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="sgt_special_delivery_fee" value="{{ product.sgt_special_delivery_fee if product else 0 }}" placeholder="도서산간 배송비(SGT)" class="px-5 py-3 bg-gray-50 rounded-2xl">
        </div>
        <label class="flex items-center gap-2 text-sm"><input type="checkbox" name="is_sgt_product" {% if product and product.is_sgt_product %}checked{% endif %}> SGT 전용 상품</label>
        <select name="status" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <option value="0" {% if not product or product.status == 0 %}selected{% endif %}>판매중</option>
            <option value="1" {% if product and product.status == 1 %}selected{% endif %}>판매중지</option>
        </select>
        <textarea name="markdown_content" rows="8" placeholder="상세 설명 (마크다운)" class="w-full px-5 py-3 bg-gray-50 rounded-2xl font-mono text-sm">{{ product.markdown_content if product and product.markdown_content else '' }}</textarea>
        {% if product and product.image_url %}<img src="{{ product.image_url }}" class="w-32 h-32 object-cover rounded-2xl">{% endif %}
        <input type="file" name="image" accept="image/*" class="w-full text-sm">
        <button class="w-full bg-emerald-600 text-white py-4 rounded-2xl font-black">저장</button>
    </form>
</div>
"""


@store_bp.route('/<int:store_id>/products')
@login_required
def store_products(store_id):
    store = _get_managed_store(store_id)
    products = (Product.query.filter(Product.store_id == store_id, Product.status != PRODUCT_DELETED)
                .order_by(Product.created_at.desc()).all())
    stats = product_stats(store_id)
    content = """
    <div class="max-w-5xl mx-auto py-10 px-4">
        <div class="flex justify-between items-center mb-6">
            <h2 class="text-2xl font-black">상품 관리 <span class="text-sm text-gray-400">{{ stats.active_products }} / {{ stats.total_products }}</span></h2>
            <a href="{{ url_for('store.store_product_new', store_id=store.id) }}" class="bg-emerald-600 text-white px-5 py-3 rounded-2xl text-sm font-black">+ 상품 등록</a>
        </div>
        <div class="bg-white rounded-[2rem] border divide-y">
        {% for p in products %}
            <div class="flex items-center justify-between p-5">
                <div class="flex items-center gap-4">
                    {% if p.image_url %}<img src="{{ p.image_url }}" class="w-14 h-14 rounded-xl object-cover">{% endif %}
                    <div>
                        <p class="font-black">{{ p.product_name }} {% if p.status == 1 %}<span class="text-xs text-red-400">판매중지</span>{% endif %}</p>
                        <p class="text-xs text-gray-400">{{ format_krw_price(p.won_price) }}원 · {{ format_sgt_price(p.sgt_price) }} SGT</p>
                    </div>
                </div>
                <div class="flex gap-2 text-xs font-black">
                    <a href="{{ url_for('store.store_product_edit', store_id=store.id, product_id=p.id) }}" class="px-4 py-2 bg-gray-100 rounded-xl">수정</a>
                    <form method="post" action="{{ url_for('store.store_product_delete', store_id=store.id, product_id=p.id) }}" onsubmit="return confirm('삭제하시겠습니까?')">
                        <button class="px-4 py-2 bg-red-50 text-red-500 rounded-xl">삭제</button>
                    </form>
                </div>
            </div>
        {% else %}
            <p class="p-10 text-center text-gray-400">등록된 상품이 없습니다.</p>
        {% endfor %}
        </div>
    </div>
    """
    return render_store_page(store, content, products=products, stats=stats)


@store_bp.route('/<int:store_id>/products/new', methods=['GET', 'POST'])
@login_required
def store_product_new(store_id):
    store = _get_managed_store(store_id)
    if request.method == 'POST':
        if not request.form.get('product_name', '').strip():
            flash("상품명을 입력해 주세요.")
            return redirect(url_for('store.store_product_new', store_id=store_id))
        product = Product(store_id=store.id)
        _apply_product_form(product, request.form)
        try:
            product.image_url = save_uploaded_image(request.files.get('image'), prefix=f'product{store.id}')
        except (OSError, ValueError):
            logger.exception("[상품] 이미지 저장 실패 (매장 %s)", store.id)
            flash("이미지 업로드에 실패했습니다.")
            return redirect(url_for('store.store_product_new', store_id=store_id))
        db.session.add(product)
        db.session.commit()
        flash("상품이 등록되었습니다.")
        return redirect(url_for('store.store_products', store_id=store_id))
    return render_store_page(store, PRODUCT_FORM_HTML, product=None)


@store_bp.route('/<int:store_id>/products/edit/<int:product_id>', methods=['GET', 'POST'])
@login_required
def store_product_edit(store_id, product_id):
    store = _get_managed_store(store_id)
    product = _get_store_product(store, product_id)
    if request.method == 'POST':
        if not request.form.get('product_name', '').strip():
            flash("상품명을 입력해 주세요.")
            return redirect(url_for('store.store_product_edit', store_id=store_id, product_id=product_id))
        _apply_product_form(product, request.form)
        try:
            image_url = save_uploaded_image(request.files.get('image'), prefix=f'product{store.id}')
        except (OSError, ValueError):
            logger.exception("[상품] %s 이미지 저장 실패", product.id)
            flash("이미지 업로드에 실패했습니다.")
            return redirect(url_for('store.store_product_edit', store_id=store_id, product_id=product_id))
        if image_url:
            product.image_url = image_url
        db.session.commit()
        flash("상품이 수정되었습니다.")
        return redirect(url_for('store.store_products', store_id=store_id))
    return render_store_page(store, PRODUCT_FORM_HTML, product=product)


@store_bp.route('/<int:store_id>/products/<int:product_id>/delete', methods=['POST'])
@login_required
def store_product_delete(store_id, product_id):
    """상품 삭제 (status=2, deleted_at 기록)"""
    store = _get_managed_store(store_id)
    product = _get_store_product(store, product_id)
    product.status = PRODUCT_DELETED
    product.deleted_at = get_kst()
    product.is_kiosk_enabled = False
    db.session.commit()
    flash("상품이 삭제되었습니다.")
    return redirect(url_for('store.store_products', store_id=store_id))


def fetch_product_options(product_id):
    """상품 옵션 그룹/선택지 (display_order 순)"""
    groups = (ProductOptionGroup.query.filter_by(product_id=product_id)
              .order_by(ProductOptionGroup.display_order.asc()).all())
    result = []
    for g in groups:
        choices = (ProductOptionChoice.query.filter_by(option_group_id=g.id)
                   .order_by(ProductOptionChoice.display_order.asc()).all())
        result.append({
            'id': g.id,
            'group_name': g.group_name,
            'selection_type': g.selection_type,
            'group_icon': g.group_icon,
            'display_order': g.display_order,
            'choices': [{
                'id': c.id,
                'choice_name': c.choice_name,
                'price_adjustment': c.price_adjustment or 0,
                'is_default': bool(c.is_default),
                'is_sold_out': bool(c.is_sold_out),
                'choice_icon': c.choice_icon,
                'display_order': c.display_order,
            } for c in choices],
        })
    return result


def save_product_options(product, groups):
    """기존 옵션을 모두 지우고 전달받은 그룹/선택지로 다시 저장"""
    old_group_ids = [g.id for g in ProductOptionGroup.query.filter_by(product_id=product.id).all()]
    if old_group_ids:
        ProductOptionChoice.query.filter(ProductOptionChoice.option_group_id.in_(old_group_ids)).delete(
            synchronize_session=False)
        ProductOptionGroup.query.filter(ProductOptionGroup.id.in_(old_group_ids)).delete(synchronize_session=False)

    for g_idx, g in enumerate(groups or []):
        name = (g.get('group_name') or '').strip()
        if not name:
            continue
        group = ProductOptionGroup(
            product_id=product.id, store_id=product.store_id, group_name=name, display_order=g_idx,
            selection_type='multiple' if g.get('selection_type') == 'multiple' else 'single',
            group_icon=g.get('group_icon'),
        )
        db.session.add(group)
        db.session.flush()
        for c_idx, c in enumerate(g.get('choices') or []):
            choice_name = (c.get('choice_name') or '').strip()
            if not choice_name:
                continue
            db.session.add(ProductOptionChoice(
                option_group_id=group.id, choice_name=choice_name, display_order=c_idx,
                price_adjustment=parse_float(c.get('price_adjustment'), 0),
                is_default=bool(c.get('is_default')), is_sold_out=bool(c.get('is_sold_out')),
                choice_icon=c.get('choice_icon'),
            ))
    db.session.commit()


@store_bp.route('/<int:store_id>/products/<int:product_id>/options', methods=['GET', 'POST'])
@login_required
def store_product_options(store_id, product_id):
    store = _get_managed_store(store_id)
    product = _get_store_product(store, product_id)
    if request.method == 'POST':
        body = request.get_json(silent=True)
        if not isinstance(body, dict) or not isinstance(body.get('groups'), list):
            return jsonify({'message': '옵션 형식이 올바르지 않습니다.'}), 400
        try:
            save_product_options(product, body['groups'])
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("[상품옵션] 상품 %s 옵션 저장 실패", product.id)
            return jsonify({'message': '옵션 저장 중 오류가 발생했습니다.'}), 500
        return jsonify({'message': '옵션이 저장되었습니다.', 'groups': fetch_product_options(product.id)})
    return jsonify({'groups': fetch_product_options(product.id)})


# --------------------------------------------------------------------------------
# 3. 주문 관리
# --------------------------------------------------------------------------------
def store_orders_query(store_id):
    """매장 상품이 포함된 주문"""
    order_ids = (db.select(OrderItem.order_id)
                 .join(Product, OrderItem.product_id == Product.id)
                 .where(Product.store_id == store_id))
    return Order.query.filter(Order.id.in_(order_ids))


def _get_store_order(store_id, order_id):
    order = store_orders_query(store_id).filter(Order.id == order_id).first()
    if order is None:
        abort(404)
    return order


def store_order_items(store_id, order):
    return [i for i in order.items if i.product and i.product.store_id == store_id]


def product_stats(store_id):
    """상품 수, 판매중 상품 수, 총 판매 수량, 판매 상위 5개"""
    total = Product.query.filter(Product.store_id == store_id, Product.status != PRODUCT_DELETED).count()
    active = Product.query.filter_by(store_id=store_id, status=PRODUCT_ACTIVE).count()
    rows = (db.session.query(Product.id, Product.product_name, Product.image_url,
                             func.coalesce(func.sum(OrderItem.quantity), 0).label('sold'))
            .join(OrderItem, OrderItem.product_id == Product.id)
            .filter(Product.store_id == store_id)
            .group_by(Product.id, Product.product_name, Product.image_url)
            .order_by(func.sum(OrderItem.quantity).desc())
            .all())
    return {
        'total_products': total,
        'active_products': active,
        'total_sold': int(sum(r.sold for r in rows)),
        'top_products': [{'product_id': r.id, 'product_name': r.product_name, 'image_url': r.image_url,
                          'sold_count': int(r.sold)} for r in rows[:5]],
    }


def _filtered_orders(store_id):
    query = store_orders_query(store_id)
    status = parse_int(request.args.get('status'))
    if status in ORDER_STATUSES:
        query = query.filter(Order.status == status)
    keyword = request.args.get('q', '').strip()
    if keyword:
        like = f"%{keyword}%"
        conditions = [Order.recipient_name.ilike(like), Order.phone_number.ilike(like),
                      Order.shipping_address.ilike(like)]
        if keyword.isdigit():
            conditions.append(Order.id == int(keyword))
        query = query.filter(or_(*conditions))
    return query.order_by(Order.created_at.desc())


@store_bp.route('/<int:store_id>/orders')
@login_required
def store_orders(store_id):
    store = _get_managed_store(store_id)
    orders = _filtered_orders(store_id).all()
    stats = product_stats(store_id)
    content = """
    <div class="max-w-6xl mx-auto py-10 px-4">
        <div class="grid grid-cols-3 gap-4 mb-8 text-center">
            <div class="bg-white border rounded-3xl p-6"><p class="text-xs text-gray-400">전체 상품</p><p class="text-2xl font-black">{{ stats.total_products }}</p></div>
            <div class="bg-white border rounded-3xl p-6"><p class="text-xs text-gray-400">판매중</p><p class="text-2xl font-black">{{ stats.active_products }}</p></div>
            <div class="bg-white border rounded-3xl p-6"><p class="text-xs text-gray-400">총 판매 수량</p><p class="text-2xl font-black text-emerald-600">{{ stats.total_sold }}</p></div>
        </div>
        {% if stats.top_products %}
        <div class="bg-white border rounded-3xl p-6 mb-8">
            <p class="font-black mb-3">인기 상품 TOP 5</p>
            {% for t in stats.top_products %}<p class="text-sm">{{ loop.index }}. {{ t.product_name }} <span class="text-gray-400">({{ t.sold_count }}개)</span></p>{% endfor %}
        </div>
        {% endif %}
        <form class="flex flex-wrap gap-2 mb-6">
            <select name="status" class="px-4 py-2 bg-white border rounded-xl text-sm">
                <option value="">전체 상태</option>
                {% for s in statuses %}<option value="{{ s }}" {% if request.args.get('status') == s|string %}selected{% endif %}>{{ get_status_text(s) }}</option>{% endfor %}
            </select>
            <input name="q" value="{{ request.args.get('q', '') }}" placeholder="주문번호·수령인·연락처·주소" class="flex-1 px-4 py-2 bg-white border rounded-xl text-sm">
            <button class="px-5 py-2 bg-gray-800 text-white rounded-xl text-sm">검색</button>
            <a href="{{ url_for('store.store_orders_export', store_id=store.id, status=request.args.get('status', ''), q=request.args.get('q', '')) }}" class="px-5 py-2 bg-emerald-600 text-white rounded-xl text-sm">엑셀</a>
        </form>
        <div class="space-y-4">
        {% for o in orders %}
            <div class="bg-white border rounded-3xl p-6">
                <div class="flex justify-between items-center mb-3">
                    <a href="{{ url_for('store.store_order_detail', store_id=store.id, order_id=o.id) }}" class="font-black">#{{ o.id }} · {{ o.recipient_name or '알 수 없음' }}</a>
                    <span class="px-3 py-1 rounded-full text-xs font-black {{ get_status_color(o.status) }}">{{ get_status_text(o.status) }}</span>
                </div>
                <p class="text-xs text-gray-400 mb-4">{{ o.created_at.strftime('%Y-%m-%d %H:%M') if o.created_at else '' }} · {{ format_krw_price(o.won_total) }}원 / {{ format_sgt_price(o.sgt_total) }} SGT</p>
                <div class="flex flex-wrap gap-2">
                {% for s in statuses %}
                    <form method="post" action="{{ url_for('store.store_order_status', store_id=store.id, order_id=o.id) }}">
                        <button name="status" value="{{ s }}" class="px-3 py-1 rounded-lg text-xs font-black {{ get_status_button_color(s, o.status) }}" {% if s == o.status %}disabled{% endif %}>{{ get_status_text(s) }}</button>
                    </form>
                {% endfor %}
                </div>
            </div>
        {% else %}
            <p class="p-10 text-center text-gray-400">주문이 없습니다.</p>
        {% endfor %}
        </div>
    </div>
    """
    return render_store_page(store, content, orders=orders, stats=stats, statuses=ORDER_STATUSES)


@store_bp.route('/<int:store_id>/orders/<int:order_id>/status', methods=['POST'])
@login_required
def store_order_status(store_id, order_id):
    """주문 상태 변경. 0~5 중 어떤 값이든 허용"""
    _get_managed_store(store_id)
    order = _get_store_order(store_id, order_id)
    if request.is_json:
        raw = (request.get_json(silent=True) or {}).get('status')
    else:
        raw = request.form.get('status')
    new_status = parse_int(raw)
    if new_status not in ORDER_STATUSES:
        return jsonify({'message': '잘못된 주문 상태입니다.'}), 400

    old_status = order.status
    order.status = new_status
    order.updated_at = get_kst()
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("[주문] %s 상태 변경 실패", order.id)
        return jsonify({'message': '주문 상태 변경에 실패했습니다.'}), 500
    logger.info("[주문] %s 상태 변경 %s -> %s (매장 %s)", order.id, old_status, new_status, store_id)

    if request.is_json:
        return jsonify({'message': '주문 상태가 변경되었습니다.', 'status': new_status,
                        'status_text': get_status_text(new_status)})
    flash(f"주문 #{order.id} 상태가 '{get_status_text(new_status)}'(으)로 변경되었습니다.")
    return redirect(request.referrer or url_for('store.store_orders', store_id=store_id))


@store_bp.route('/<int:store_id>/orders/<int:order_id>')
@login_required
def store_order_detail(store_id, order_id):
    store = _get_managed_store(store_id)
    order = _get_store_order(store_id, order_id)
    items = store_order_items(store_id, order)
    content = """
    <div class="max-w-3xl mx-auto py-10 px-4">
        <div class="bg-white border rounded-[2rem] p-8 space-y-4">
            <div class="flex justify-between items-center">
                <h2 class="text-2xl font-black">주문 #{{ order.id }}</h2>
                <span class="px-3 py-1 rounded-full text-xs font-black {{ get_status_color(order.status) }}">{{ get_status_text(order.status) }}</span>
            </div>
            <p class="text-sm">수령인: {{ order.recipient_name or '-' }} / {{ order.phone_number or '-' }}</p>
            <p class="text-sm">배송지: {{ order.shipping_address or '-' }}</p>
            <div class="divide-y border-t">
            {% for i in items %}
                <div class="py-3 flex justify-between text-sm">
                    <span>{{ i.product.product_name }} x {{ i.quantity }}</span>
                    <span>{{ format_krw_price(i.won_price * i.quantity) }}원 / {{ format_sgt_price(i.sgt_price * i.quantity) }} SGT</span>
                </div>
            {% endfor %}
            </div>
            <p class="text-sm text-gray-400">배송비 {{ format_krw_price(order.won_shipping_cost) }}원 / {{ format_sgt_price(order.sgt_shipping_cost) }} SGT</p>
            <p class="text-xl font-black text-emerald-600">{{ format_krw_price(order.won_total) }}원 / {{ format_sgt_price(order.sgt_total) }} SGT</p>
        </div>
    </div>
    """
    return render_store_page(store, content, order=order, items=items)


@store_bp.route('/<int:store_id>/orders/export')
@login_required
def store_orders_export(store_id):
    """주문 내역 엑셀 다운로드 (현재 필터 적용)"""
    store = _get_managed_store(store_id)
    rows = []
    for o in _filtered_orders(store_id).all():
        for i in store_order_items(store_id, o):
            rows.append({
                '주문번호': o.id,
                '주문일시': o.created_at.strftime('%Y-%m-%d %H:%M') if o.created_at else '',
                '상태': get_status_text(o.status),
                '수령인': o.recipient_name or '',
                '연락처': o.phone_number or '',
                '배송지': o.shipping_address or '',
                '상품명': i.product.product_name,
                '수량': i.quantity,
                '원화금액': (i.won_price or 0) * (i.quantity or 0),
                'SGT금액': (i.sgt_price or 0) * (i.quantity or 0),
            })
    if not rows:
        flash("다운로드할 주문이 없습니다.")
        return redirect(url_for('store.store_orders', store_id=store_id))
    df = pd.DataFrame(rows)
    out = BytesIO()
    with pd.ExcelWriter(out, engine='openpyxl') as w:
        df.to_excel(w, index=False)
    out.seek(0)
    filename = f"{store.store_name}_주문내역_{datetime.now().strftime('%m%d_%H%M')}.xlsx"
    return send_file(out, download_name=filename, as_attachment=True)


# --------------------------------------------------------------------------------
# 4. 쿠폰
# --------------------------------------------------------------------------------
def validate_coupon_form(form, now=None):
    """쿠폰 입력값 검증. 반환: (data, error_message)"""
    now = now or get_kst()
    name = form.get('name', '').strip()
    if not name:
        return None, "쿠폰 이름을 입력해 주세요."
    radius = parse_int(form.get('radius_meters'))
    if radius is None or radius <= 0:
        return None, "배포 반경은 0보다 커야 합니다."
    raw_expiry = form.get('expiry_date', '').strip()
    expiry = None
    for fmt in ('%Y-%m-%dT%H:%M', '%Y-%m-%d %H:%M', '%Y-%m-%d'):
        try:
            expiry = datetime.strptime(raw_expiry, fmt)
            break
        except ValueError:
            continue
    if expiry is None:
        return None, "만료일을 입력해 주세요."
    # 날짜만 입력하면 그날 자정 직전까지 유효
    if len(raw_expiry) == 10:
        expiry = expiry.replace(hour=23, minute=59, second=59)
    if expiry <= now:
        return None, "만료일은 현재 이후여야 합니다."
    return {
        'name': name,
        'description': form.get('description', '').strip(),
        'warning': form.get('warning', '').strip(),
        'radius_meters': radius,
        'expiry_date': expiry,
        'max_claims': parse_int(form.get('max_claims')),
    }, None


@store_bp.route('/<int:store_id>/coupons', methods=['GET', 'POST'])
@login_required
def store_coupons(store_id):
    store = _get_managed_store(store_id)
    if request.method == 'POST':
        data, error = validate_coupon_form(request.form)
        if error:
            flash(error)
            return redirect(url_for('store.store_coupons', store_id=store_id))
        db.session.add(Coupon(store_id=store.id, **data))
        db.session.commit()
        flash("쿠폰이 발행되었습니다.")
        return redirect(url_for('store.store_coupons', store_id=store_id))

    coupons = Coupon.query.filter_by(store_id=store_id).order_by(Coupon.created_at.desc()).all()
    content = """
    <div class="max-w-4xl mx-auto py-10 px-4 space-y-8">
        <form method="post" class="bg-white border rounded-[2rem] p-8 space-y-3">
            <h2 class="text-xl font-black mb-2">쿠폰 발행</h2>
            <input name="name" placeholder="쿠폰 이름 *" class="w-full px-5 py-3 bg-gray-50 rounded-2xl" required>
            <input name="description" placeholder="설명" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <input name="warning" placeholder="유의사항" class="w-full px-5 py-3 bg-gray-50 rounded-2xl">
            <div class="grid grid-cols-3 gap-3">
                <input name="radius_meters" type="number" value="500" placeholder="반경(m)" class="px-5 py-3 bg-gray-50 rounded-2xl">
                <input name="expiry_date" type="datetime-local" class="px-5 py-3 bg-gray-50 rounded-2xl">
                <input name="max_claims" type="number" placeholder="최대 발급 수" class="px-5 py-3 bg-gray-50 rounded-2xl">
            </div>
            <button class="w-full bg-emerald-600 text-white py-3 rounded-2xl font-black">발행</button>
        </form>
        <div class="grid md:grid-cols-2 gap-4">
        {% for c in coupons %}
            <div class="bg-white border rounded-3xl p-6 {% if not c.is_active or c.expiry_date < now %}opacity-50{% endif %}">
                <p class="font-black">{{ c.name }}</p>
                <p class="text-xs text-gray-400">{{ c.description or '' }}</p>
                <p class="text-xs mt-2">반경 {{ c.radius_meters }}m · ~{{ c.expiry_date.strftime('%Y-%m-%d %H:%M') }}</p>
                <form method="post" action="{{ url_for('store.store_coupon_toggle', store_id=store.id, coupon_id=c.id) }}" class="mt-3">
                    <button class="text-xs font-black {% if c.is_active %}text-red-500{% else %}text-emerald-600{% endif %}">{{ '중지' if c.is_active else '재개' }}</button>
                </form>
            </div>
        {% else %}
            <p class="text-gray-400">발행한 쿠폰이 없습니다.</p>
        {% endfor %}
        </div>
    </div>
    """
    return render_store_page(store, content, coupons=coupons, now=get_kst())


@store_bp.route('/<int:store_id>/coupons/<int:coupon_id>/toggle', methods=['POST'])
@login_required
def store_coupon_toggle(store_id, coupon_id):
    _get_managed_store(store_id)
    coupon = db.session.get(Coupon, coupon_id)
    if coupon is None or coupon.store_id != store_id:
        abort(404)
    coupon.is_active = not coupon.is_active
    db.session.commit()
    return redirect(url_for('store.store_coupons', store_id=store_id))


# --------------------------------------------------------------------------------
# 5. 키오스크 설정
# --------------------------------------------------------------------------------
def kiosk_sales_by_day(store_id):
    """결제 완료된 키오스크 주문의 일자별 건수/금액"""
    day = func.date(KioskOrder.paid_at)
    rows = (db.session.query(day.label('day'), func.count(KioskOrder.id),
                             func.coalesce(func.sum(KioskOrder.total_amount), 0),
                             func.coalesce(func.sum(KioskOrder.total_amount_krw), 0))
            .filter(KioskOrder.store_id == store_id, KioskOrder.status.in_(('completed', 'ready')),
                    KioskOrder.paid_at.isnot(None))
            .group_by(day).order_by(day.desc()).all())
    return [{'day': str(r[0]), 'count': r[1], 'sgt_total': float(r[2]), 'krw_total': int(r[3])} for r in rows]


KIOSK_TABS = (('products', '상품'), ('options', '옵션'), ('sessions', '기기'), ('orders', '주문'), ('sales', '매출'))


@store_bp.route('/<int:store_id>/kiosk-edit')
@login_required
def store_kiosk_edit(store_id):
    store = _get_managed_store(store_id)
    tab = request.args.get('tab', 'products')
    ctx = {'tab': tab, 'tabs': KIOSK_TABS}
    ctx['products'] = (Product.query.filter(Product.store_id == store_id, Product.status != PRODUCT_DELETED)
                       .order_by(Product.kiosk_order.asc(), Product.id.asc()).all())
    if tab == 'options':
        ctx['groups'] = (StoreOptionGroup.query.filter_by(store_id=store_id)
                         .order_by(StoreOptionGroup.display_order.asc()).all())
        ctx['links'] = {g.id: {link.product_id for link in ProductGlobalOptionLink.query.filter_by(store_option_group_id=g.id)}
                        for g in ctx['groups']}
    elif tab == 'sessions':
        ctx['sessions'] = (KioskSession.query.filter_by(store_id=store_id, status='active')
                           .order_by(KioskSession.device_number.asc()).all())
    elif tab == 'orders':
        ctx['kiosk_orders'] = (KioskOrder.query.filter_by(store_id=store_id)
                               .order_by(KioskOrder.created_at.desc()).limit(100).all())
        ctx['kiosk_statuses'] = KIOSK_ORDER_STATUSES
        ctx['status_text'] = KIOSK_STATUS_TEXT
        ctx['type_text'] = KIOSK_ORDER_TYPE_TEXT
    elif tab == 'sales':
        ctx['sales'] = kiosk_sales_by_day(store_id)

    content = """
    <div class="max-w-5xl mx-auto py-10 px-4">
        <div class="bg-white border rounded-[2rem] p-6 mb-6 flex flex-wrap items-center justify-between gap-4">
            <div>
                <p class="text-xs text-gray-400">키오스크 접속 키</p>
                <p class="font-mono text-sm">{{ store.kiosk_key or '미발급' }}</p>
                {% if store.kiosk_key %}<a href="{{ url_for('kiosk.kiosk_entry', key=store.kiosk_key) }}" class="text-xs text-emerald-600">키오스크 열기</a>{% endif %}
            </div>
            <form method="post" action="{{ url_for('store.store_kiosk_regenerate_key', store_id=store.id) }}">
                <button class="px-4 py-2 bg-gray-800 text-white rounded-xl text-xs font-black">키 재발급</button>
            </form>
            <form method="post" action="{{ url_for('store.store_kiosk_modes', store_id=store.id) }}" class="flex gap-4 text-sm items-center">
                <label><input type="checkbox" name="dine_in" {% if store.kiosk_dine_in_enabled %}checked{% endif %}> 매장식사</label>
                <label><input type="checkbox" name="takeout" {% if store.kiosk_takeout_enabled %}checked{% endif %}> 포장</label>
                <label><input type="checkbox" name="delivery" {% if store.kiosk_delivery_enabled %}checked{% endif %}> 배달</label>
                <button class="px-4 py-2 bg-emerald-600 text-white rounded-xl text-xs font-black">저장</button>
            </form>
        </div>
        <div class="flex gap-2 mb-6 text-xs font-black">
        {% for key, label in tabs %}
            <a href="?tab={{ key }}" class="px-4 py-2 rounded-xl {% if tab == key %}bg-gray-800 text-white{% else %}bg-white border text-gray-500{% endif %}">{{ label }}</a>
        {% endfor %}
        </div>

        {% if tab == 'products' %}
        <div id="productList" class="bg-white border rounded-[2rem] divide-y">
        {% for p in products %}
            <div class="flex items-center justify-between p-4" data-id="{{ p.id }}">
                <div class="flex items-center gap-3">
                    <span class="cursor-move text-gray-300"><i class="fas fa-grip-vertical"></i></span>
                    <span class="font-black">{{ p.product_name }}</span>
                    <span class="text-xs text-gray-400">{{ format_sgt_price(p.sgt_price) }} SGT</span>
                </div>
                <div class="flex gap-2 text-xs font-black">
                    <form method="post" action="{{ url_for('store.store_kiosk_product_toggle', store_id=store.id, product_id=p.id) }}">
                        <button class="px-3 py-1 rounded-lg {% if p.is_kiosk_enabled %}bg-emerald-100 text-emerald-700{% else %}bg-gray-100 text-gray-400{% endif %}">{{ '노출중' if p.is_kiosk_enabled else '숨김' }}</button>
                    </form>
                    <form method="post" action="{{ url_for('store.store_kiosk_product_sold_out', store_id=store.id, product_id=p.id) }}">
                        <button class="px-3 py-1 rounded-lg {% if p.is_sold_out %}bg-red-100 text-red-600{% else %}bg-gray-100 text-gray-500{% endif %}">{{ '품절' if p.is_sold_out else '판매중' }}</button>
                    </form>
                </div>
            </div>
        {% endfor %}
        </div>
        <script src="https://cdn.jsdelivr.net/npm/sortablejs@1.15.0/Sortable.min.js"></script>
        <script>
        Sortable.create(document.getElementById('productList'), {
            handle: '.cursor-move',
            onEnd: function () {
                var ids = Array.from(document.querySelectorAll('#productList [data-id]')).map(function (el) { return parseInt(el.dataset.id); });
                fetch("{{ url_for('store.store_kiosk_reorder', store_id=store.id) }}", {
                    method: 'POST', headers: {'Content-Type': 'application/json'}, body: JSON.stringify({product_ids: ids})
                });
            }
        });
        </script>

        {% elif tab == 'options' %}
        <form method="post" action="{{ url_for('store.store_option_group_create', store_id=store.id) }}" class="flex gap-2 mb-6">
            <input name="name" placeholder="옵션 그룹 이름 (예: 사이즈)" class="flex-1 px-5 py-3 bg-white border rounded-2xl" required>
            <input name="icon" placeholder="아이콘" class="w-32 px-5 py-3 bg-white border rounded-2xl">
            <button class="px-5 bg-emerald-600 text-white rounded-2xl font-black text-sm">추가</button>
        </form>
        <div class="space-y-6">
        {% for g in groups %}
            <div class="bg-white border rounded-[2rem] p-6">
                <div class="flex justify-between items-center mb-4">
                    <p class="font-black">{{ g.name }}</p>
                    <form method="post" action="{{ url_for('store.store_option_group_delete', store_id=store.id, group_id=g.id) }}" onsubmit="return confirm('삭제하시겠습니까?')">
                        <button class="text-xs text-red-500 font-black">그룹 삭제</button>
                    </form>
                </div>
                {% for c in g.choices %}
                <div class="flex justify-between text-sm py-1">
                    <span>{{ c.name }} {% if c.is_default %}<span class="text-xs text-emerald-600">기본</span>{% endif %}</span>
                    <span class="flex gap-3">+{{ format_sgt_price(c.price_impact) }} SGT
                        <form method="post" action="{{ url_for('store.store_option_choice_delete', store_id=store.id, choice_id=c.id) }}"><button class="text-red-400"><i class="fas fa-times"></i></button></form>
                    </span>
                </div>
                {% endfor %}
                <form method="post" action="{{ url_for('store.store_option_choice_create', store_id=store.id, group_id=g.id) }}" class="grid grid-cols-5 gap-2 mt-4 text-sm">
                    <input name="name" placeholder="선택지" class="col-span-2 px-3 py-2 bg-gray-50 rounded-xl" required>
                    <input name="price_impact" placeholder="추가 SGT" class="px-3 py-2 bg-gray-50 rounded-xl">
                    <input name="won_price" placeholder="추가 원화" class="px-3 py-2 bg-gray-50 rounded-xl">
                    <button class="bg-gray-800 text-white rounded-xl font-black">추가</button>
                    <label class="col-span-5 text-xs"><input type="checkbox" name="is_default"> 기본 선택</label>
                </form>
                <form method="post" action="{{ url_for('store.store_option_group_links', store_id=store.id, group_id=g.id) }}" class="mt-4 border-t pt-4">
                    <p class="text-xs text-gray-400 mb-2">적용 상품</p>
                    <div class="flex flex-wrap gap-3 text-xs">
                    {% for p in products %}
                        <label><input type="checkbox" name="product_ids" value="{{ p.id }}" {% if p.id in links[g.id] %}checked{% endif %}> {{ p.product_name }}</label>
                    {% endfor %}
                    </div>
                    <button class="mt-3 px-4 py-2 bg-emerald-600 text-white rounded-xl text-xs font-black">연결 저장</button>
                </form>
            </div>
        {% else %}
            <p class="text-gray-400">등록된 옵션 그룹이 없습니다.</p>
        {% endfor %}
        </div>

        {% elif tab == 'sessions' %}
        <div class="bg-white border rounded-[2rem] divide-y">
        {% for s in sessions %}
            <div class="flex justify-between items-center p-4 text-sm">
                <span class="font-black">기기 #{{ s.device_number }}</span>
                <span class="text-xs text-gray-400">마지막 활동 {{ s.last_active_at.strftime('%m-%d %H:%M') if s.last_active_at else '-' }}</span>
                <form method="post" action="{{ url_for('store.store_kiosk_session_terminate', store_id=store.id, session_id=s.id) }}">
                    <button class="text-xs text-red-500 font-black">종료</button>
                </form>
            </div>
        {% else %}
            <p class="p-10 text-center text-gray-400">활성 기기가 없습니다.</p>
        {% endfor %}
        </div>

        {% elif tab == 'orders' %}
        <div class="space-y-3">
        {% for o in kiosk_orders %}
            <div class="bg-white border rounded-3xl p-5">
                <div class="flex justify-between text-sm">
                    <span class="font-black">{{ o.id[:8] }} · {{ type_text.get(o.order_type, o.order_type) }}{% if o.device_number %} · 기기 #{{ o.device_number }}{% endif %}</span>
                    <span>{{ status_text.get(o.status, o.status) }}</span>
                </div>
                <p class="text-xs text-gray-400">{{ o.created_at.strftime('%m-%d %H:%M') if o.created_at else '' }} · {{ format_krw_price(o.total_amount_krw) }}원</p>
                {% for i in o.items %}<p class="text-xs">{{ i.product.product_name if i.product else '' }} x {{ i.quantity }}{% for op in i.options %} / {{ op.option_choice_name }}{% endfor %}</p>{% endfor %}
                {% if o.delivery_address %}<p class="text-xs mt-1">배달: {{ o.delivery_address }} {{ o.delivery_address_detail or '' }} ({{ o.recipient_phone or '' }})</p>{% endif %}
                <form method="post" action="{{ url_for('store.store_kiosk_order_status', store_id=store.id, order_id=o.id) }}" class="flex gap-2 mt-3">
                {% for s in kiosk_statuses %}
                    <button name="status" value="{{ s }}" class="px-3 py-1 rounded-lg text-xs font-black {% if s == o.status %}bg-gray-300 text-gray-700{% else %}bg-gray-100 text-gray-500{% endif %}" {% if s == o.status %}disabled{% endif %}>{{ status_text[s] }}</button>
                {% endfor %}
                </form>
            </div>
        {% else %}
            <p class="text-gray-400">키오스크 주문이 없습니다.</p>
        {% endfor %}
        </div>

        {% elif tab == 'sales' %}
        <table class="w-full bg-white border rounded-[2rem] text-sm">
            <thead><tr class="text-gray-400 text-xs"><th class="p-4 text-left">일자</th><th>건수</th><th>SGT</th><th>원화</th></tr></thead>
            <tbody>
            {% for s in sales %}
                <tr class="border-t"><td class="p-4">{{ s.day }}</td><td class="text-center">{{ s.count }}</td><td class="text-center">{{ format_sgt_price(s.sgt_total) }}</td><td class="text-center">{{ format_krw_price(s.krw_total) }}</td></tr>
            {% else %}
                <tr><td colspan="4" class="p-10 text-center text-gray-400">매출 내역이 없습니다.</td></tr>
            {% endfor %}
            </tbody>
        </table>
        {% endif %}
    </div>
    """
    return render_store_page(store, content, **ctx)


@store_bp.route('/<int:store_id>/kiosk/products/<int:product_id>/toggle', methods=['POST'])
@login_required
def store_kiosk_product_toggle(store_id, product_id):
    store = _get_managed_store(store_id)
    product = _get_store_product(store, product_id)
    product.is_kiosk_enabled = not product.is_kiosk_enabled
    db.session.commit()
    return redirect(url_for('store.store_kiosk_edit', store_id=store_id, tab='products'))


@store_bp.route('/<int:store_id>/kiosk/products/<int:product_id>/sold-out', methods=['POST'])
@login_required
def store_kiosk_product_sold_out(store_id, product_id):
    store = _get_managed_store(store_id)
    product = _get_store_product(store, product_id)
    product.is_sold_out = not product.is_sold_out
    db.session.commit()
    return redirect(url_for('store.store_kiosk_edit', store_id=store_id, tab='products'))


@store_bp.route('/<int:store_id>/kiosk/reorder', methods=['POST'])
@login_required
def store_kiosk_reorder(store_id):
    """키오스크 상품 노출 순서 저장 (product_ids 순서대로 kiosk_order 0, 1, 2...)"""
    _get_managed_store(store_id)
    body = request.get_json(silent=True) or {}
    ids = [parse_int(pid) for pid in body.get('product_ids') or []]
    products = {p.id: p for p in Product.query.filter(Product.store_id == store_id, Product.id.in_(ids)).all()}
    for order, pid in enumerate(ids):
        if pid in products:
            products[pid].kiosk_order = order
    db.session.commit()
    return jsonify({'message': '순서가 저장되었습니다.', 'count': len(products)})


@store_bp.route('/<int:store_id>/kiosk/modes', methods=['POST'])
@login_required
def store_kiosk_modes(store_id):
    store = _get_managed_store(store_id)
    store.kiosk_dine_in_enabled = bool(request.form.get('dine_in'))
    store.kiosk_takeout_enabled = bool(request.form.get('takeout'))
    store.kiosk_delivery_enabled = bool(request.form.get('delivery'))
    db.session.commit()
    flash("키오스크 주문 방식이 저장되었습니다.")
    return redirect(url_for('store.store_kiosk_edit', store_id=store_id))


@store_bp.route('/<int:store_id>/kiosk/regenerate-key', methods=['POST'])
@login_required
def store_kiosk_regenerate_key(store_id):
    store = _get_managed_store(store_id)
    store.kiosk_key = generate_kiosk_key()
    db.session.commit()
    logger.info("[키오스크] 매장 %s 키 재발급", store_id)
    flash("키오스크 키가 재발급되었습니다. 기존 키로는 접속할 수 없습니다.")
    return redirect(url_for('store.store_kiosk_edit', store_id=store_id))


@store_bp.route('/<int:store_id>/kiosk/option-groups', methods=['POST'])
@login_required
def store_option_group_create(store_id):
    _get_managed_store(store_id)
    name = request.form.get('name', '').strip()
    if not name:
        flash("옵션 그룹 이름을 입력해 주세요.")
    else:
        count = StoreOptionGroup.query.filter_by(store_id=store_id).count()
        db.session.add(StoreOptionGroup(store_id=store_id, name=name, icon=request.form.get('icon', '').strip() or None,
                                        display_order=count))
        db.session.commit()
    return redirect(url_for('store.store_kiosk_edit', store_id=store_id, tab='options'))


def _get_store_option_group(store_id, group_id):
    group = db.session.get(StoreOptionGroup, group_id)
    if group is None or group.store_id != store_id:
        abort(404)
    return group


@store_bp.route('/<int:store_id>/kiosk/option-groups/<int:group_id>/delete', methods=['POST'])
@login_required
def store_option_group_delete(store_id, group_id):
    _get_managed_store(store_id)
    group = _get_store_option_group(store_id, group_id)
    ProductGlobalOptionLink.query.filter_by(store_option_group_id=group.id).delete()
    db.session.delete(group)
    db.session.commit()
    return redirect(url_for('store.store_kiosk_edit', store_id=store_id, tab='options'))


@store_bp.route('/<int:store_id>/kiosk/option-groups/<int:group_id>/choices', methods=['POST'])
@login_required
def store_option_choice_create(store_id, group_id):
    _get_managed_store(store_id)
    group = _get_store_option_group(store_id, group_id)
    name = request.form.get('name', '').strip()
    if not name:
        flash("선택지 이름을 입력해 주세요.")
        return redirect(url_for('store.store_kiosk_edit', store_id=store_id, tab='options'))
    price_impact = parse_float(request.form.get('price_impact'), 0)
    db.session.add(StoreOptionChoice(
        group_id=group.id, name=name, price_impact=price_impact, sgt_price=price_impact,
        won_price=parse_int(request.form.get('won_price')), icon=request.form.get('icon') or None,
        is_default=bool(request.form.get('is_default')), display_order=len(group.choices),
    ))
    db.session.commit()
    return redirect(url_for('store.store_kiosk_edit', store_id=store_id, tab='options'))


@store_bp.route('/<int:store_id>/kiosk/option-choices/<int:choice_id>/delete', methods=['POST'])
@login_required
def store_option_choice_delete(store_id, choice_id):
    _get_managed_store(store_id)
    choice = db.session.get(StoreOptionChoice, choice_id)
    if choice is None or choice.group.store_id != store_id:
        abort(404)
    db.session.delete(choice)
    db.session.commit()
    return redirect(url_for('store.store_kiosk_edit', store_id=store_id, tab='options'))


@store_bp.route('/<int:store_id>/kiosk/option-groups/<int:group_id>/links', methods=['POST'])
@login_required
def store_option_group_links(store_id, group_id):
    """옵션 그룹에 연결된 상품 목록 교체"""
    _get_managed_store(store_id)
    group = _get_store_option_group(store_id, group_id)
    wanted = {parse_int(v) for v in request.form.getlist('product_ids')}
    valid = {p.id for p in Product.query.filter(Product.store_id == store_id, Product.id.in_(wanted)).all()}
    ProductGlobalOptionLink.query.filter_by(store_option_group_id=group.id).delete()
    for pid in sorted(valid):
        db.session.add(ProductGlobalOptionLink(product_id=pid, store_option_group_id=group.id))
    db.session.commit()
    flash(f"'{group.name}' 옵션이 {len(valid)}개 상품에 연결되었습니다.")
    return redirect(url_for('store.store_kiosk_edit', store_id=store_id, tab='options'))


@store_bp.route('/<int:store_id>/kiosk/sessions/<session_id>/terminate', methods=['POST'])
@login_required
def store_kiosk_session_terminate(store_id, session_id):
    _get_managed_store(store_id)
    ks = db.session.get(KioskSession, session_id)
    if ks is None or ks.store_id != store_id:
        abort(404)
    ks.status = 'expired'
    ks.expired_at = get_kst()
    db.session.commit()
    logger.info("[키오스크] 매장 %s 기기 #%s 세션 강제 종료", store_id, ks.device_number)
    return redirect(url_for('store.store_kiosk_edit', store_id=store_id, tab='sessions'))


@store_bp.route('/<int:store_id>/kiosk/orders/<order_id>/status', methods=['POST'])
@login_required
def store_kiosk_order_status(store_id, order_id):
    _get_managed_store(store_id)
    order = db.session.get(KioskOrder, order_id)
    if order is None or order.store_id != store_id:
        abort(404)
    status = request.form.get('status') or (request.get_json(silent=True) or {}).get('status')
    if status not in KIOSK_ORDER_STATUSES:
        return jsonify({'message': '잘못된 주문 상태입니다.'}), 400
    order.status = status
    db.session.commit()
    logger.info("[키오스크] 주문 %s 상태 변경 -> %s", order.id, status)
    if request.is_json:
        return jsonify({'message': '주문 상태가 변경되었습니다.', 'status': status})
    return redirect(url_for('store.store_kiosk_edit', store_id=store_id, tab='orders'))
