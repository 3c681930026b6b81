# --------------------------------------------------------------------------------
# 키오스크 (매장 태블릿 주문)
# - 세션: 기기번호 자동 부여(매장별 최대값 + 1), 마지막 활동 기준 만료
# - 장바구니: Flask session 에 매장별 보관
# - 결제: PortOne 브라우저 SDK -> /api/payment/complete 검증 -> 처리중 화면 폴링
# --------------------------------------------------------------------------------
import logging
from datetime import timedelta

from flask import Blueprint, request, redirect, jsonify, flash, url_for, session, abort
from sqlalchemy.exc import SQLAlchemyError

import config
from juso import ADDRESS_POPUP_SCRIPT
from layout import render_kiosk_page
from models import (db, get_kst, Store, Product, KioskSession, KioskOrder, KioskOrderItem, KioskOrderItemOption,
                    StoreOptionGroup, StoreOptionChoice, ProductGlobalOptionLink, PRODUCT_ACTIVE, KIOSK_ORDER_TYPES)
from utils import sgt_to_krw, parse_int, parse_float, KIOSK_ORDER_TYPE_TEXT

logger = logging.getLogger(__name__)

kiosk_bp = Blueprint('kiosk', __name__, url_prefix='/kiosk')


# --------------------------------------------------------------------------------
# 1. 옵션 요금 조회
# --------------------------------------------------------------------------------
def _choice_to_dict(choice):
    return {
        'id': choice.id,
        'name': choice.name,
        'price_impact': choice.price_impact or 0,
        'won_price': choice.won_price,
        'sgt_price': choice.sgt_price or 0,
        'icon': choice.icon,
        'is_default': bool(choice.is_default),
    }


def fetch_product_option_fees(product_id):
    """상품에 연결된 매장 공통 옵션 그룹과 선택지 목록 (조회 실패 시 빈 목록)"""
    try:
        group_ids = [link.store_option_group_id
                     for link in ProductGlobalOptionLink.query.filter_by(product_id=product_id).all()]
        if not group_ids:
            return []
        groups = (StoreOptionGroup.query.filter(StoreOptionGroup.id.in_(group_ids))
                  .order_by(StoreOptionGroup.display_order.asc()).all())
        return [{
            'id': g.id,
            'name': g.name,
            'icon': g.icon,
            'choices': [_choice_to_dict(c) for c in g.choices],
        } for g in groups]
    except SQLAlchemyError:
        logger.exception("[키오스크] 상품 %s 옵션 조회 실패", product_id)
        return []


def fetch_option_fee_by_id(option_id):
    try:
        choice = db.session.get(StoreOptionChoice, option_id)
    except SQLAlchemyError:
        logger.exception("[키오스크] 옵션 %s 조회 실패", option_id)
        return None
    return _choice_to_dict(choice) if choice else None


def calculate_total_fee_impact(option_ids):
    """선택 옵션들의 추가 요금 합 (옵션 없음/조회 실패 시 0)"""
    if not option_ids:
        return 0
    try:
        choices = StoreOptionChoice.query.filter(StoreOptionChoice.id.in_(option_ids)).all()
    except SQLAlchemyError:
        logger.exception("[키오스크] 옵션 요금 합계 계산 실패")
        return 0
    return sum((c.price_impact or 0) for c in choices)


# --------------------------------------------------------------------------------
# 2. 세션 관리
# --------------------------------------------------------------------------------
def next_device_number(store_id):
    last = (KioskSession.query.filter_by(store_id=store_id)
            .order_by(KioskSession.device_number.desc()).first())
    return (last.device_number or 0) + 1 if last else 1


def start_kiosk_session(store_id, device_identifier=None):
    now = get_kst()
    ks = KioskSession(
        store_id=store_id,
        device_identifier=(device_identifier or '')[:100],
        device_number=next_device_number(store_id),
        status='active',
        created_at=now,
        last_active_at=now,
        expired_at=now + timedelta(hours=config.KIOSK_SESSION_HOURS),
    )
    db.session.add(ks)
    db.session.commit()
    logger.info("[키오스크] 매장 %s 세션 시작 (기기번호 %s)", store_id, ks.device_number)
    return ks


def touch_kiosk_session(ks):
    now = get_kst()
    ks.last_active_at = now
    ks.expired_at = now + timedelta(hours=config.KIOSK_SESSION_HOURS)


def find_inactive_sessions(hours=None):
    """마지막 활동이 hours 시간 이전인 active 세션 목록과 기준 시각"""
    hours = config.KIOSK_SESSION_HOURS if hours is None else hours
    cutoff = get_kst() - timedelta(hours=hours)
    sessions = KioskSession.query.filter(KioskSession.status == 'active',
                                         KioskSession.last_active_at < cutoff).all()
    return sessions, cutoff


def terminate_inactive_sessions(hours=None):
    """비활성 active 세션을 expired 로 변경. 반환: 종료된 세션 ID 목록"""
    inactive, cutoff = find_inactive_sessions(hours)
    if not inactive:
        logger.info("[세션정리] 종료할 비활성 세션 없음 (기준: %s)", cutoff)
        return []
    now = get_kst()
    for ks in inactive:
        ks.status = 'expired'
        ks.expired_at = now
        logger.info("[세션정리] 종료: ID=%s 기기=%s 매장=%s 마지막활동=%s",
                    ks.id, ks.device_number, ks.store_id, ks.last_active_at)
    db.session.commit()
    return [ks.id for ks in inactive]


def _session_key(store_id):
    return f"kiosk_session_{store_id}"


def _current_kiosk_session(store_id):
    sid = session.get(_session_key(store_id))
    if not sid:
        return None
    ks = db.session.get(KioskSession, sid)
    if ks is None or ks.store_id != store_id or ks.status != 'active':
        return None
    return ks


def _get_kiosk_store(store_id):
    store = db.session.get(Store, store_id)
    if store is None or store.deleted_at is not None:
        abort(404)
    return store


def enabled_order_types(store):
    types = []
    if store.kiosk_dine_in_enabled:
        types.append('kiosk_dine_in')
    if store.kiosk_takeout_enabled:
        types.append('kiosk_takeout')
    if store.kiosk_delivery_enabled:
        types.append('kiosk_delivery')
    return types


# --------------------------------------------------------------------------------
# 3. 장바구니 (Flask session)
# --------------------------------------------------------------------------------
def _cart_key(store_id):
    return f"kiosk_cart_{store_id}"


def get_cart(store_id):
    return list(session.get(_cart_key(store_id)) or [])


def save_cart(store_id, cart):
    session[_cart_key(store_id)] = cart
    session.modified = True


def clear_cart(store_id):
    session.pop(_cart_key(store_id), None)


def build_cart_lines(store_id, cart):
    """장바구니 -> 화면/주문용 라인. 반환: (lines, total_sgt, sold_out_names)

    라인 금액 = (상품 SGT 가격 + 옵션 추가요금 합) x 수량.
    삭제/판매중지 상품은 조용히 제외, 품절 상품은 이름을 돌려준다.
    """
    lines, sold_out = [], []
    total = 0
    for idx, item in enumerate(cart):
        product = db.session.get(Product, item.get('product_id'))
        if product is None or product.store_id != store_id or product.status != PRODUCT_ACTIVE:
            continue
        if product.is_sold_out:
            sold_out.append(product.product_name)
            continue
        option_ids = item.get('option_ids') or []
        choices = StoreOptionChoice.query.filter(StoreOptionChoice.id.in_(option_ids)).all() if option_ids else []
        option_total = sum((c.price_impact or 0) for c in choices)
        quantity = max(1, int(item.get('quantity') or 1))
        unit_price = (product.sgt_price or 0) + option_total
        lines.append({
            'index': idx,
            'product': product,
            'choices': choices,
            'quantity': quantity,
            'unit_price': unit_price,
            'line_total': unit_price * quantity,
        })
        total += unit_price * quantity
    return lines, total, sold_out


def create_kiosk_order(store, order_type, lines, total_sgt, kiosk_session=None, delivery=None):
    """결제 대기(pending_payment) 주문 생성. 금액(원) = round(SGT 합계 x 환율)"""
    order = KioskOrder(
        store_id=store.id,
        kiosk_session_id=kiosk_session.id if kiosk_session else None,
        device_number=kiosk_session.device_number if kiosk_session else None,
        order_type=order_type,
        total_amount=total_sgt,
        total_amount_krw=sgt_to_krw(total_sgt, config.SGT_EXCHANGE_RATE),
        status='pending_payment',
        created_at=get_kst(),
    )
    for key, value in (delivery or {}).items():
        setattr(order, key, value)
    db.session.add(order)
    db.session.flush()

    for line in lines:
        item = KioskOrderItem(kiosk_order_id=order.id, product_id=line['product'].id,
                              quantity=line['quantity'], price_at_purchase=line['product'].sgt_price or 0)
        db.session.add(item)
        db.session.flush()
        for choice in line['choices']:
            db.session.add(KioskOrderItemOption(
                kiosk_order_item_id=item.id,
                option_group_id=choice.group_id,
                option_group_name=choice.group.name if choice.group else '',
                option_choice_id=choice.id,
                option_choice_name=choice.name,
                price_impact=choice.price_impact or 0,
            ))
    db.session.commit()
    logger.info("[키오스크] 주문 생성 %s 매장=%s 유형=%s SGT=%s 원=%s",
                order.id, store.id, order_type, total_sgt, order.total_amount_krw)
    return order


# --------------------------------------------------------------------------------
# 4. 화면 라우트
# --------------------------------------------------------------------------------
@kiosk_bp.route('/', methods=['GET', 'POST'])
def kiosk_entry():
    """QR/키오스크 키로 매장 찾기"""
    key = (request.values.get('key') or request.values.get('kiosk_key') or '').strip()
    if key:
        store = Store.query.filter_by(kiosk_key=key).filter(Store.deleted_at.is_(None)).first()
        if store:
            return redirect(url_for('kiosk.kiosk_menu', store_id=store.id))
        flash("유효하지 않은 키오스크 키입니다.")
    content = """
    <div class="min-h-screen flex items-center justify-center px-6">
        <form method="post" class="bg-white p-10 rounded-[2.5rem] shadow-xl w-full max-w-md text-center space-y-6">
            <h1 class="text-3xl font-black text-emerald-600 italic">SanggaTalk Kiosk</h1>
            <p class="text-slate-400 text-sm">매장에서 발급받은 키오스크 키를 입력하세요.</p>
            <input name="kiosk_key" placeholder="키오스크 키" class="w-full px-5 py-4 bg-slate-100 rounded-2xl text-center outline-none" required>
            <button class="w-full bg-emerald-600 text-white py-4 rounded-2xl text-lg">시작하기</button>
        </form>
    </div>
    """
    return render_kiosk_page(content)


@kiosk_bp.route('/<int:store_id>')
def kiosk_menu(store_id):
    store = _get_kiosk_store(store_id)
    ks = _current_kiosk_session(store_id)
    if ks is None:
        ks = start_kiosk_session(store_id, request.args.get('device') or request.headers.get('User-Agent', ''))
        session[_session_key(store_id)] = ks.id

    products = (Product.query.filter_by(store_id=store_id, is_kiosk_enabled=True, status=PRODUCT_ACTIVE)
                .order_by(Product.kiosk_order.asc(), Product.id.asc()).all())
    options = {p.id: fetch_product_option_fees(p.id) for p in products}
    lines, total, _ = build_cart_lines(store_id, get_cart(store_id))

    content = """
    <div class="flex h-screen">
        <section class="flex-1 overflow-y-auto p-8">
            <div class="flex items-center justify-between mb-8">
                <h1 class="text-3xl font-black">{{ store.store_name }}</h1>
                <span class="text-xs text-slate-400">기기 #{{ ks.device_number }}</span>
            </div>
            <div class="grid grid-cols-2 lg:grid-cols-3 gap-6">
            {% for p in products %}
                <form method="post" action="{{ url_for('kiosk.kiosk_cart_add', store_id=store.id) }}" class="bg-white rounded-3xl p-5 shadow {% if p.is_sold_out %}opacity-40{% endif %}">
                    <input type="hidden" name="product_id" value="{{ p.id }}">
                    {% if p.image_url %}<img src="{{ p.image_url }}" class="w-full aspect-square object-cover rounded-2xl mb-4">{% endif %}
                    <p class="text-lg">{{ p.product_name }}</p>
                    <p class="text-emerald-600 text-xl font-black">{{ format_sgt_price(p.sgt_price) }} SGT</p>
                    {% for g in options[p.id] %}
                    <div class="mt-3 text-sm">
                        <p class="text-slate-400">{{ g.name }}</p>
                        {% for c in g.choices %}
                        <label class="flex items-center gap-2"><input type="checkbox" name="option_ids" value="{{ c.id }}" {% if c.is_default %}checked{% endif %}> {{ c.name }}{% if c.price_impact %} (+{{ format_sgt_price(c.price_impact) }}){% endif %}</label>
                        {% endfor %}
                    </div>
                    {% endfor %}
                    {% if p.is_sold_out %}
                    <p class="mt-4 text-red-500">품절</p>
                    {% else %}
                    <button class="mt-4 w-full bg-emerald-600 text-white py-3 rounded-2xl">담기</button>
                    {% endif %}
                </form>
            {% else %}
                <p class="text-slate-400">판매 중인 상품이 없습니다.</p>
            {% endfor %}
            </div>
        </section>
        <aside class="w-96 bg-white border-l p-6 flex flex-col">
            <h2 class="text-xl mb-4">장바구니</h2>
            <div class="flex-1 overflow-y-auto space-y-3">
            {% for line in lines %}
                <div class="border-b pb-3">
                    <p>{{ line.product.product_name }}</p>
                    {% for c in line.choices %}<p class="text-xs text-slate-400">+ {{ c.name }}</p>{% endfor %}
                    <div class="flex items-center justify-between mt-2">
                        <form method="post" action="{{ url_for('kiosk.kiosk_cart_update', store_id=store.id) }}" class="flex items-center gap-2">
                            <input type="hidden" name="index" value="{{ line.index }}">
                            <button name="quantity" value="{{ line.quantity - 1 }}" class="w-8 h-8 bg-slate-100 rounded-full">-</button>
                            <span>{{ line.quantity }}</span>
                            <button name="quantity" value="{{ line.quantity + 1 }}" class="w-8 h-8 bg-slate-100 rounded-full">+</button>
                        </form>
                        <span>{{ format_sgt_price(line.line_total) }} SGT</span>
                    </div>
                </div>
            {% else %}
                <p class="text-slate-400 text-sm">담긴 상품이 없습니다.</p>
            {% endfor %}
            </div>
            <div class="pt-4 border-t">
                <p class="flex justify-between text-lg"><span>합계</span><span>{{ format_sgt_price(total) }} SGT</span></p>
                <p class="text-right text-sm text-slate-400">≈ {{ format_krw_price(total * rate) }}원</p>
                <a href="{{ url_for('kiosk.kiosk_checkout', store_id=store.id) }}" class="mt-4 block text-center bg-slate-900 text-white py-4 rounded-2xl text-lg">주문하기</a>
            </div>
        </aside>
    </div>
    <script>
        setInterval(function () {
            fetch("{{ url_for('kiosk.kiosk_session_heartbeat', store_id=store.id) }}", {method: 'POST'});
        }, 60000);
    </script>
    """
    return render_kiosk_page(content, store=store, ks=ks, products=products, options=options, lines=lines,
                             total=total, rate=config.SGT_EXCHANGE_RATE, page_title=store.store_name)


@kiosk_bp.route('/<int:store_id>/session/heartbeat', methods=['POST'])
def kiosk_session_heartbeat(store_id):
    ks = _current_kiosk_session(store_id)
    if ks is None:
        return jsonify({'message': '활성 세션이 없습니다.'}), 404
    touch_kiosk_session(ks)
    db.session.commit()
    return jsonify({'status': ks.status, 'device_number': ks.device_number,
                    'expired_at': ks.expired_at.isoformat()})


@kiosk_bp.route('/<int:store_id>/session/disconnect', methods=['POST'])
def kiosk_session_disconnect(store_id):
    ks = _current_kiosk_session(store_id)
    if ks is None:
        return jsonify({'message': '활성 세션이 없습니다.'}), 404
    ks.status = 'disconnected'
    ks.last_active_at = get_kst()
    db.session.commit()
    session.pop(_session_key(store_id), None)
    logger.info("[키오스크] 세션 연결 해제 %s (기기번호 %s)", ks.id, ks.device_number)
    return jsonify({'status': ks.status})


@kiosk_bp.route('/<int:store_id>/cart/add', methods=['POST'])
def kiosk_cart_add(store_id):
    _get_kiosk_store(store_id)
    product = db.session.get(Product, parse_int(request.form.get('product_id')))
    if product is None or product.store_id != store_id or product.status != PRODUCT_ACTIVE or not product.is_kiosk_enabled:
        flash("주문할 수 없는 상품입니다.")
        return redirect(url_for('kiosk.kiosk_menu', store_id=store_id))
    if product.is_sold_out:
        flash(f"'{product.product_name}' 상품은 품절입니다.")
        return redirect(url_for('kiosk.kiosk_menu', store_id=store_id))

    # 상품에 연결된 옵션만 허용
    allowed = {c['id'] for g in fetch_product_option_fees(product.id) for c in g['choices']}
    option_ids = sorted({oid for oid in (parse_int(v) for v in request.form.getlist('option_ids')) if oid in allowed})
    quantity = max(1, parse_int(request.form.get('quantity'), 1))

    cart = get_cart(store_id)
    for item in cart:
        if item['product_id'] == product.id and sorted(item.get('option_ids') or []) == option_ids:
            item['quantity'] += quantity
            break
    else:
        cart.append({'product_id': product.id, 'quantity': quantity, 'option_ids': option_ids})
    save_cart(store_id, cart)
    return redirect(url_for('kiosk.kiosk_menu', store_id=store_id))


@kiosk_bp.route('/<int:store_id>/cart/update', methods=['POST'])
def kiosk_cart_update(store_id):
    cart = get_cart(store_id)
    idx = parse_int(request.form.get('index'), -1)
    quantity = parse_int(request.form.get('quantity'), 0)
    if 0 <= idx < len(cart):
        if quantity <= 0:
            cart.pop(idx)
        else:
            cart[idx]['quantity'] = quantity
        save_cart(store_id, cart)
    return redirect(request.referrer or url_for('kiosk.kiosk_menu', store_id=store_id))


@kiosk_bp.route('/<int:store_id>/cart/remove', methods=['POST'])
def kiosk_cart_remove(store_id):
    cart = get_cart(store_id)
    idx = parse_int(request.form.get('index'), -1)
    if 0 <= idx < len(cart):
        cart.pop(idx)
        save_cart(store_id, cart)
    return redirect(request.referrer or url_for('kiosk.kiosk_menu', store_id=store_id))


def _checkout_lines(store_id):
    """주문 직전 장바구니 확인. 품절 상품은 장바구니에서 빼고 안내"""
    cart = get_cart(store_id)
    lines, total, sold_out = build_cart_lines(store_id, cart)
    if sold_out:
        flash(f"품절된 상품이 장바구니에서 제외되었습니다: {', '.join(sold_out)}")
        keep = {line['index'] for line in lines}
        save_cart(store_id, [item for i, item in enumerate(cart) if i in keep])
    return lines, total


@kiosk_bp.route('/<int:store_id>/checkout', methods=['GET', 'POST'])
def kiosk_checkout(store_id):
    store = _get_kiosk_store(store_id)
    lines, total = _checkout_lines(store_id)
    order_types = enabled_order_types(store)

    if request.method == 'POST':
        if not lines:
            flash("장바구니가 비어 있습니다.")
            return redirect(url_for('kiosk.kiosk_menu', store_id=store_id))
        order_type = request.form.get('order_type')
        if order_type not in KIOSK_ORDER_TYPES or order_type not in order_types:
            flash("주문 방식을 선택해 주세요.")
            return redirect(url_for('kiosk.kiosk_checkout', store_id=store_id))
        if order_type == 'kiosk_delivery':
            return redirect(url_for('kiosk.kiosk_delivery_address', store_id=store_id))
        try:
            order = create_kiosk_order(store, order_type, lines, total, _current_kiosk_session(store_id))
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("[키오스크] 매장 %s 주문 생성 실패", store_id)
            flash("주문 준비 중 오류가 발생했습니다. 다시 시도해 주세요.")
            return redirect(url_for('kiosk.kiosk_checkout', store_id=store_id))
        clear_cart(store_id)
        return redirect(url_for('kiosk.kiosk_payment', store_id=store_id, order_id=order.id))

    content = """
    <div class="max-w-2xl mx-auto py-12 px-6">
        <h1 class="text-3xl font-black mb-8">주문 확인</h1>
        <div class="bg-white rounded-3xl p-6 shadow space-y-4">
        {% for line in lines %}
            <div class="flex justify-between">
                <div>
                    <p>{{ line.product.product_name }} x {{ line.quantity }}</p>
                    {% for c in line.choices %}<p class="text-xs text-slate-400">+ {{ c.name }}</p>{% endfor %}
                </div>
                <div class="flex items-center gap-3">
                    <span>{{ format_sgt_price(line.line_total) }} SGT</span>
                    <form method="post" action="{{ url_for('kiosk.kiosk_cart_remove', store_id=store.id) }}">
                        <input type="hidden" name="index" value="{{ line.index }}">
                        <button class="text-red-400"><i class="fas fa-times"></i></button>
                    </form>
                </div>
            </div>
        {% else %}
            <p class="text-slate-400">장바구니가 비어 있습니다.</p>
        {% endfor %}
            <div class="border-t pt-4 flex justify-between text-xl">
                <span>합계</span>
                <span>{{ format_sgt_price(total) }} SGT <span class="text-sm text-slate-400">({{ format_krw_price(total * rate) }}원)</span></span>
            </div>
        </div>
        <form method="post" class="grid grid-cols-3 gap-4 mt-8">
            {% for t in order_types %}
            <button name="order_type" value="{{ t }}" class="bg-emerald-600 text-white py-6 rounded-3xl text-xl" {% if not lines %}disabled{% endif %}>{{ type_text[t] }}</button>
            {% endfor %}
        </form>
        <a href="{{ url_for('kiosk.kiosk_menu', store_id=store.id) }}" class="block text-center mt-6 text-slate-400">메뉴로 돌아가기</a>
    </div>
    """
    return render_kiosk_page(content, store=store, lines=lines, total=total, order_types=order_types,
                             type_text=KIOSK_ORDER_TYPE_TEXT, rate=config.SGT_EXCHANGE_RATE)


@kiosk_bp.route('/<int:store_id>/delivery-address', methods=['GET', 'POST'])
def kiosk_delivery_address(store_id):
    store = _get_kiosk_store(store_id)
    if not store.kiosk_delivery_enabled:
        flash("이 매장은 배달 주문을 받지 않습니다.")
        return redirect(url_for('kiosk.kiosk_checkout', store_id=store_id))

    if request.method == 'POST':
        lines, total = _checkout_lines(store_id)
        if not lines:
            flash("장바구니가 비어 있습니다.")
            return redirect(url_for('kiosk.kiosk_menu', store_id=store_id))
        address = request.form.get('address', '').strip()
        phone = request.form.get('recipient_phone', '').strip()
        if not address or not phone:
            flash("배달 주소와 연락처를 입력해 주세요.")
            return redirect(url_for('kiosk.kiosk_delivery_address', store_id=store_id))
        delivery = {
            'delivery_address': address,
            'delivery_address_detail': request.form.get('address_detail', '').strip(),
            'delivery_zip_code': request.form.get('zip_code', '').strip(),
            'delivery_latitude': parse_float(request.form.get('latitude')),
            'delivery_longitude': parse_float(request.form.get('longitude')),
            'recipient_phone': phone,
            'notes': request.form.get('notes', '').strip(),
        }
        try:
            order = create_kiosk_order(store, 'kiosk_delivery', lines, total, _current_kiosk_session(store_id),
                                       delivery=delivery)
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("[키오스크] 매장 %s 배달 주문 생성 실패", store_id)
            flash("주문 준비 중 오류가 발생했습니다. 다시 시도해 주세요.")
            return redirect(url_for('kiosk.kiosk_delivery_address', store_id=store_id))
        clear_cart(store_id)
        return redirect(url_for('kiosk.kiosk_payment', store_id=store_id, order_id=order.id))

    content = """
    <div class="max-w-xl mx-auto py-12 px-6">
        <h1 class="text-3xl font-black mb-8">배달 주소 입력</h1>
        <form method="post" class="bg-white rounded-3xl p-8 shadow space-y-4">
            <div class="flex gap-2">
                <input id="address" name="address" readonly placeholder="주소 검색을 눌러주세요" class="flex-1 px-5 py-4 bg-slate-100 rounded-2xl" required>
                <button type="button" onclick="openJusoPopup()" class="px-5 bg-slate-900 text-white rounded-2xl">주소 검색</button>
            </div>
            <input name="address_detail" placeholder="상세 주소" class="w-full px-5 py-4 bg-slate-100 rounded-2xl">
            <input id="zip_code" name="zip_code" type="hidden">
            <input id="latitude" name="latitude" type="hidden">
            <input id="longitude" name="longitude" type="hidden">
            <input name="recipient_phone" placeholder="연락처" class="w-full px-5 py-4 bg-slate-100 rounded-2xl" required>
            <textarea name="notes" placeholder="요청 사항" class="w-full px-5 py-4 bg-slate-100 rounded-2xl"></textarea>
            <button class="w-full bg-emerald-600 text-white py-4 rounded-2xl text-lg">결제하기</button>
        </form>
    </div>
    """ + ADDRESS_POPUP_SCRIPT
    return render_kiosk_page(content, store=store)


def _get_store_order(store_id, order_id):
    order = db.session.get(KioskOrder, order_id) if order_id else None
    if order is None or order.store_id != store_id:
        abort(404)
    return order


@kiosk_bp.route('/<int:store_id>/payment')
def kiosk_payment(store_id):
    """PortOne 결제창 호출. 키오스크 주문 ID를 그대로 paymentId 로 사용"""
    store = _get_kiosk_store(store_id)
    order = _get_store_order(store_id, request.args.get('order_id'))
    if order.status != 'pending_payment':
        return redirect(url_for('kiosk.kiosk_payment_processing', store_id=store_id, order_id=order.id))
    if order.payment_id != order.id:
        order.payment_id = order.id
        db.session.commit()

    order_name = f"{store.store_name} - {KIOSK_ORDER_TYPE_TEXT.get(order.order_type, '주문')}"
    content = """
    <script src="https://cdn.portone.io/v2/browser-sdk.js"></script>
    <div class="max-w-md mx-auto py-20 px-6 text-center">
        <h2 class="text-2xl font-black mb-2">{{ order_name }}</h2>
        <p class="text-slate-400 mb-2">{{ format_sgt_price(order.total_amount) }} SGT</p>
        <p class="text-4xl font-black text-emerald-600 mb-10">{{ format_krw_price(order.total_amount_krw) }}원</p>
        <button id="payBtn" class="w-full bg-emerald-600 text-white py-5 rounded-3xl text-xl">결제하기</button>
        <a href="{{ url_for('kiosk.kiosk_checkout', store_id=store.id) }}" class="block mt-6 text-slate-400">취소</a>
        <p id="payError" class="mt-6 text-red-500"></p>
    </div>
    <script>
    document.getElementById('payBtn').addEventListener('click', async function () {
        const response = await PortOne.requestPayment({
            storeId: "{{ portone_store_id }}",
            channelKey: "{{ portone_channel_key }}",
            paymentId: "{{ order.id }}",
            orderName: {{ order_name|tojson }},
            totalAmount: {{ order.total_amount_krw }},
            currency: "CURRENCY_KRW",
            payMethod: "CARD",
            redirectUrl: "{{ url_for('kiosk.kiosk_payment_callback', store_id=store.id, _external=True) }}"
        });
        if (response.code !== undefined) {
            document.getElementById('payError').innerText = response.message || '결제가 취소되었습니다.';
            return;
        }
        location.href = "{{ url_for('kiosk.kiosk_payment_callback', store_id=store.id) }}?paymentId=" + encodeURIComponent(response.paymentId) + "&txId=" + encodeURIComponent(response.txId || '');
    });
    </script>
    """
    return render_kiosk_page(content, store=store, order=order, order_name=order_name,
                             portone_store_id=config.PORTONE_STORE_ID, portone_channel_key=config.PORTONE_CHANNEL_KEY)


@kiosk_bp.route('/<int:store_id>/payment/callback')
def kiosk_payment_callback(store_id):
    """결제창 복귀 페이지. 결과를 결제 완료 API 로 넘기고 처리중 화면으로 이동"""
    store = _get_kiosk_store(store_id)
    payment_id = request.args.get('paymentId', '')
    code = request.args.get('code')
    if code:
        logger.warning("[키오스크] 결제창 오류 paymentId=%s code=%s message=%s",
                       payment_id, code, request.args.get('message'))
        flash(f"결제가 완료되지 않았습니다: {request.args.get('message') or code}")
        return redirect(url_for('kiosk.kiosk_checkout', store_id=store_id))
    if not payment_id:
        flash("잘못된 접근입니다. 결제 정보가 누락되었습니다.")
        return redirect(url_for('kiosk.kiosk_menu', store_id=store_id))

    content = """
    <div class="min-h-screen flex flex-col items-center justify-center">
        <i class="fas fa-spinner fa-spin text-5xl text-emerald-600 mb-6"></i>
        <p class="text-xl">결제 상태를 확인 중입니다...</p>
    </div>
    <script>
    fetch("{{ url_for('payment.payment_complete') }}", {
        method: 'POST',
        headers: {'Content-Type': 'application/json'},
        body: JSON.stringify({paymentId: {{ payment_id|tojson }}, impUid: {{ payment_id|tojson }}, txId: {{ tx_id|tojson }}})
    }).finally(function () {
        location.href = "{{ url_for('kiosk.kiosk_payment_processing', store_id=store.id, order_id=payment_id) }}";
    });
    </script>
    """
    return render_kiosk_page(content, store=store, payment_id=payment_id, tx_id=request.args.get('txId', ''))


@kiosk_bp.route('/<int:store_id>/payment-processing')
def kiosk_payment_processing(store_id):
    store = _get_kiosk_store(store_id)
    order = _get_store_order(store_id, request.args.get('order_id'))
    content = """
    <div class="min-h-screen flex flex-col items-center justify-center text-center px-6">
        <i id="spinner" class="fas fa-spinner fa-spin text-5xl text-emerald-600 mb-6"></i>
        <p id="statusText" class="text-xl">결제를 처리하고 있습니다...</p>
        <a id="retry" href="{{ url_for('kiosk.kiosk_menu', store_id=store.id) }}" class="hidden mt-8 bg-slate-900 text-white px-8 py-4 rounded-2xl">처음으로</a>
    </div>
    <script>
    function poll() {
        fetch("{{ url_for('kiosk.kiosk_order_status', store_id=store.id, order_id=order.id) }}")
            .then(function (r) { return r.json(); })
            .then(function (data) {
                if (data.status === 'completed' || data.status === 'ready') {
                    location.href = "{{ url_for('kiosk.kiosk_success', store_id=store.id, order_id=order.id) }}";
                } else if (data.status === 'failed' || data.status === 'cancelled') {
                    document.getElementById('spinner').className = 'fas fa-times-circle text-5xl text-red-500 mb-6';
                    document.getElementById('statusText').innerText = '결제에 실패했습니다.';
                    document.getElementById('retry').classList.remove('hidden');
                } else {
                    setTimeout(poll, 2000);
                }
            })
            .catch(function () { setTimeout(poll, 3000); });
    }
    poll();
    </script>
    """
    return render_kiosk_page(content, store=store, order=order)


@kiosk_bp.route('/<int:store_id>/orders/<order_id>/status.json')
def kiosk_order_status(store_id, order_id):
    order = _get_store_order(store_id, order_id)
    return jsonify({'id': order.id, 'status': order.status, 'total_amount_krw': order.total_amount_krw,
                    'paid_at': order.paid_at.isoformat() if order.paid_at else None})


@kiosk_bp.route('/<int:store_id>/success')
def kiosk_success(store_id):
    store = _get_kiosk_store(store_id)
    order = _get_store_order(store_id, request.args.get('order_id'))
    if order.status not in ('completed', 'ready'):
        return redirect(url_for('kiosk.kiosk_payment_processing', store_id=store_id, order_id=order.id))
    content = """
    <div class="max-w-md mx-auto py-20 px-6 text-center">
        <div class="w-24 h-24 bg-emerald-500 rounded-full flex items-center justify-center text-white text-4xl mx-auto mb-10 shadow-2xl">
            <i class="fas fa-check"></i>
        </div>
        <h2 class="text-3xl font-black mb-4">주문 완료!</h2>
        <p class="text-slate-500 mb-2">{{ type_text.get(order.order_type, '') }}{% if order.device_number %} · 기기 #{{ order.device_number }}{% endif %}</p>
        <div class="bg-white p-6 rounded-3xl shadow text-left space-y-2 my-8">
            {% for item in order.items %}
            <div>
                <p>{{ item.product.product_name if item.product else '' }} x {{ item.quantity }}</p>
                {% for o in item.options %}<p class="text-xs text-slate-400">+ {{ o.option_group_name }}: {{ o.option_choice_name }}</p>{% endfor %}
            </div>
            {% endfor %}
            <p class="border-t pt-3 text-xl text-emerald-600">{{ format_krw_price(order.total_amount_krw) }}원</p>
        </div>
        <p class="text-xs text-slate-400 mb-8">주문번호 {{ order.id[:8] }}</p>
        <a href="{{ url_for('kiosk.kiosk_menu', store_id=store.id) }}" class="block bg-slate-900 text-white py-5 rounded-3xl text-lg">처음으로</a>
    </div>
    <script>setTimeout(function () { location.href = "{{ url_for('kiosk.kiosk_menu', store_id=store.id) }}"; }, 15000);</script>
    """
    return render_kiosk_page(content, store=store, order=order, type_text=KIOSK_ORDER_TYPE_TEXT)
