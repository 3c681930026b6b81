import logging
import os

import requests
from flask import Flask, request, redirect, url_for, session, flash, jsonify, abort
from flask_login import LoginManager, login_user, login_required, logout_user, current_user
from sqlalchemy import or_, func
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.security import generate_password_hash, check_password_hash

import config
from layout import render_page
from models import (db, User, Category, Store, Product, Review, Notice, StoreApplication,
                    PRODUCT_ACTIVE, ROLE_CUSTOMER, ROLE_STORE_OWNER, ROLE_SUPER_ADMIN)
from utils import (format_sgt_price, format_krw_price, get_status_text, get_status_color,
                   get_status_button_color, render_markdown, haversine_meters, parse_float, safe_next_url)
from payment_system import payment_bp
from juso import address_bp
from kiosk_system import kiosk_bp
from store_system import store_bp
from admin_routes import admin_bp
from wallet_system import wallet_bp

# --------------------------------------------------------------------------------
# 1. 초기 설정 및 Flask 인스턴스 생성
# --------------------------------------------------------------------------------
logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = Flask(__name__)
# 프록시(Render, nginx 등) 뒤에서 redirect_uri가 올바르게 https·실도메인으로 생성되도록
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)
app.secret_key = config.SECRET_KEY
app.config['SQLALCHEMY_DATABASE_URI'] = config.DATABASE_URL
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['UPLOAD_FOLDER'] = config.UPLOAD_FOLDER
app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024

db.init_app(app)

app.register_blueprint(payment_bp)
app.register_blueprint(address_bp)
app.register_blueprint(kiosk_bp)
app.register_blueprint(store_bp)
app.register_blueprint(admin_bp)
app.register_blueprint(wallet_bp)

login_manager = LoginManager()
login_manager.login_view = 'login'
login_manager.login_message = "로그인이 필요합니다."
login_manager.init_app(app)

SELECTABLE_ROLES = (ROLE_CUSTOMER, ROLE_STORE_OWNER)
ROLE_TEXT = {ROLE_CUSTOMER: '일반 회원', ROLE_STORE_OWNER: '점주', 'admin': '관리자', ROLE_SUPER_ADMIN: '최고 관리자'}


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@app.context_processor
def inject_globals():
    """전역 템플릿 함수 주입"""
    return dict(
        format_sgt_price=format_sgt_price,
        format_krw_price=format_krw_price,
        get_status_text=get_status_text,
        get_status_color=get_status_color,
        get_status_button_color=get_status_button_color,
        render_markdown=render_markdown,
    )


def active_stores():
    return Store.query.filter(Store.deleted_at.is_(None))


def active_products():
    return Product.query.join(Store).filter(Product.status == PRODUCT_ACTIVE, Store.deleted_at.is_(None))


STORE_CARDS_HTML = """
<div class="grid grid-cols-2 md:grid-cols-4 gap-4">
{% for s in stores %}
    <a href="{{ url_for('store_details', store_id=s.id) }}" class="bg-white rounded-3xl border overflow-hidden hover:shadow-lg transition">
        {% if s.image_url %}<img src="{{ s.image_url }}" class="w-full aspect-square object-cover">{% else %}<div class="w-full aspect-square bg-gray-100 flex items-center justify-center text-gray-300"><i class="fas fa-store text-3xl"></i></div>{% endif %}
        <div class="p-4">
            <p class="font-black truncate">{{ s.store_name }}</p>
            <p class="text-[11px] text-gray-400 truncate">{{ s.address or '' }}</p>
            {% if distances is defined and distances.get(s.id) is not none %}<p class="text-[11px] text-emerald-600 font-black">{{ '%.1f'|format(distances[s.id] / 1000) }}km</p>{% endif %}
        </div>
    </a>
{% else %}
    <p class="col-span-full p-10 text-center text-gray-400">등록된 매장이 없습니다.</p>
{% endfor %}
</div>
"""

PRODUCT_CARDS_HTML = """
<div class="grid grid-cols-2 md:grid-cols-4 gap-4">
{% for p in products %}
    <a href="{{ url_for('product_details', store_id=p.store_id, product_id=p.id) }}" class="bg-white rounded-3xl border overflow-hidden">
        {% if p.image_url %}<img src="{{ p.image_url }}" class="w-full aspect-square object-cover">{% else %}<div class="w-full aspect-square bg-gray-100"></div>{% endif %}
        <div class="p-4">
            <p class="font-black truncate">{{ p.product_name }}</p>
            <p class="text-[11px] text-gray-400 truncate">{{ p.store.store_name if p.store else '' }}</p>
            {% if p.is_sgt_product %}<p class="text-emerald-600 font-black">{{ format_sgt_price(p.sgt_price) }} SGT</p>
            {% else %}<p class="font-black">{{ format_krw_price(p.won_price) }}원</p>{% endif %}
        </div>
    </a>
{% else %}
    <p class="col-span-full p-10 text-center text-gray-400">상품이 없습니다.</p>
{% endfor %}
</div>
"""


# --------------------------------------------------------------------------------
# 2. 회원 (로그인 / 회원가입 / 구글 로그인 / 프로필)
# --------------------------------------------------------------------------------
@app.route('/login', methods=['GET', 'POST'])
def login():
    """로그인 라우트"""
    if request.method == 'POST':
        user = User.query.filter_by(email=request.form.get('email', '').strip().lower()).first()
        if user and user.password and check_password_hash(user.password, request.form.get('password', '')):
            session.permanent = True
            login_user(user)
            return redirect(safe_next_url(request.args.get('next')))
        flash("로그인 정보를 다시 한 번 확인해주세요.")
    next_arg = request.args.get('next', '')
    next_q = ('?next=' + requests.utils.quote(next_arg)) if next_arg else ''
    return render_page("""
    <div class="max-w-md mx-auto mt-20 p-10 bg-white rounded-[3rem] shadow-2xl border">
        <h2 class="text-3xl font-black text-center mb-8 text-emerald-600 italic tracking-tighter">Login</h2>
        <a href="/auth/google{{ next_q }}" class="flex items-center justify-center gap-3 w-full py-4 rounded-2xl font-black text-sm bg-white border-2 border-gray-200 text-gray-700 hover:bg-gray-50"><span class="w-5 h-5 rounded-full bg-[#4285F4] flex items-center justify-center text-white text-[10px]">G</span> 구글로 로그인</a>
        <form method="POST" class="space-y-4 mt-8 pt-8 border-t">
            <input name="email" type="email" placeholder="email@example.com" class="w-full p-5 bg-gray-50 rounded-2xl font-black text-sm" required>
            <input name="password" type="password" placeholder="••••••••" class="w-full p-5 bg-gray-50 rounded-2xl font-black text-sm" required>
            <button class="w-full bg-emerald-600 text-white py-5 rounded-2xl font-black text-lg">로그인</button>
        </form>
        <div class="text-center mt-8"><a href="/signup" class="text-gray-400 text-xs font-black hover:text-emerald-600">아직 회원이 아니신가요? 회원가입</a></div>
    </div>""", next_q=next_q)


@app.route('/signup', methods=['GET', 'POST'])
def signup():
    if request.method == 'POST':
        email = request.form.get('email', '').strip().lower()
        password = request.form.get('password', '')
        username = request.form.get('username', '').strip()
        if not email or not password:
            flash("이메일과 비밀번호를 입력해 주세요.")
            return redirect('/signup')
        if User.query.filter_by(email=email).first():
            flash("이미 가입된 이메일입니다.")
            return redirect('/signup')
        user = User(email=email, password=generate_password_hash(password), username=username or None,
                    role=ROLE_CUSTOMER)
        db.session.add(user)
        db.session.commit()
        logger.info("[회원] 신규 가입 %s", email)
        login_user(user)
        return redirect(url_for('account_setting'))
    return render_page("""
    <div class="max-w-md mx-auto mt-12 mb-24 p-10 bg-white rounded-[3rem] shadow-2xl border">
        <h2 class="text-2xl font-black mb-10 tracking-tighter text-emerald-600">Join Us</h2>
        <form method="POST" class="space-y-4">
            <input name="username" placeholder="닉네임" class="w-full p-5 bg-gray-50 rounded-2xl font-black text-sm">
            <input name="email" type="email" placeholder="이메일 주소" class="w-full p-5 bg-gray-50 rounded-2xl font-black text-sm" required>
            <input name="password" type="password" placeholder="비밀번호" class="w-full p-5 bg-gray-50 rounded-2xl font-black text-sm" required>
            <button class="w-full bg-emerald-600 text-white py-5 rounded-2xl font-black text-lg">가입 완료</button>
        </form>
    </div>""")


@app.route('/logout')
def logout():
    """로그아웃"""
    logout_user()
    return redirect('/')


def _oauth_redirect_uri():
    """OAuth redirect_uri. OAUTH_REDIRECT_BASE 설정 시 사용(redirect_uri_mismatch 방지)"""
    base = config.OAUTH_REDIRECT_BASE or request.url_root.rstrip('/')
    return base + '/auth/callback'


def _auth_error(message):
    return redirect(url_for('auth_error', error=message))


def find_or_create_social_user(provider, provider_id, email, name):
    """소셜 로그인: provider+provider_id 또는 email 로 회원 찾기, 없으면 생성"""
    user = User.query.filter_by(auth_provider=provider, auth_provider_id=str(provider_id)).first()
    if user is None and email:
        user = User.query.filter_by(email=email.lower()).first()
        if user is not None:
            user.auth_provider = provider
            user.auth_provider_id = str(provider_id)
    if user is None:
        user = User(email=(email or f"{provider}_{provider_id}@social.local").lower(), password=None,
                    username=name or None, role=ROLE_CUSTOMER,
                    auth_provider=provider, auth_provider_id=str(provider_id))
        db.session.add(user)
    elif name and not user.username:
        user.username = name
    db.session.commit()
    return user


@app.route('/auth/google')
def auth_google():
    """구글 로그인 진입: 구글 인증 페이지로 리다이렉트"""
    if not config.GOOGLE_CLIENT_ID:
        flash("구글 로그인이 설정되지 않았습니다.")
        return redirect('/login')
    state = os.urandom(16).hex()
    session['oauth_state'] = state
    session['oauth_next'] = safe_next_url(request.args.get('next'), url_for('profile'))
    scope = requests.utils.quote('openid email profile')
    url = (
        'https://accounts.google.com/o/oauth2/v2/auth'
        '?client_id={}&redirect_uri={}&response_type=code&scope={}&state={}'
    ).format(config.GOOGLE_CLIENT_ID, requests.utils.quote(_oauth_redirect_uri()), scope, state)
    return redirect(url)


@app.route('/auth/callback')
def auth_callback():
    """구글 로그인 콜백: code -> 토큰 -> 프로필 -> 로그인"""
    code = request.args.get('code')
    if not code:
        return _auth_error("No authentication code provided")
    state = request.args.get('state')
    if not state or state != session.pop('oauth_state', None):
        return _auth_error("잘못된 요청입니다.")
    next_url = session.pop('oauth_next', None) or url_for('profile')
    try:
        token_res = requests.post(
            'https://oauth2.googleapis.com/token',
            data={
                'code': code,
                'client_id': config.GOOGLE_CLIENT_ID,
                'client_secret': config.GOOGLE_CLIENT_SECRET,
                'redirect_uri': _oauth_redirect_uri(),
                'grant_type': 'authorization_code',
            },
            timeout=10,
        )
        if token_res.status_code != 200:
            logger.warning("[로그인] 구글 토큰 교환 실패 status=%s", token_res.status_code)
            return _auth_error("구글 로그인(토큰)에 실패했습니다.")
        access_token = token_res.json().get('access_token')
        if not access_token:
            return _auth_error("구글 로그인에 실패했습니다.")
        profile_res = requests.get('https://www.googleapis.com/oauth2/v2/userinfo',
                                   headers={'Authorization': 'Bearer ' + access_token}, timeout=10)
        if profile_res.status_code != 200:
            return _auth_error("프로필 조회에 실패했습니다.")
        info = profile_res.json()
    except (requests.RequestException, ValueError) as e:
        logger.error("[로그인] 구글 로그인 오류: %s", e)
        return _auth_error("구글 로그인 응답 오류.")
    if not info.get('id'):
        return _auth_error("구글 프로필을 가져올 수 없습니다.")
    user = find_or_create_social_user('google', info['id'], (info.get('email') or '').strip() or None,
                                      (info.get('name') or '').strip() or None)
    session.permanent = True
    login_user(user)
    return redirect(next_url)


@app.route('/auth-error')
def auth_error():
    return render_page("""
    <div class="max-w-md mx-auto mt-24 p-10 bg-white rounded-[3rem] border text-center space-y-6">
        <h2 class="text-2xl font-black">로그인 오류</h2>
        <p class="text-sm text-gray-500">{{ error or '인증 과정에서 문제가 발생했습니다.' }}</p>
        <a href="/" class="text-emerald-600 font-black text-sm">홈으로</a>
    </div>""", error=request.args.get('error'))


def update_profile(user, username, role=None):
    """닉네임/권한 수정. 관리자 권한은 여기서 부여하지 않음"""
    user.username = username
    if role in SELECTABLE_ROLES and not user.is_admin:
        user.role = role
    db.session.commit()
    return user


@app.route('/account-setting', methods=['GET', 'POST'])
@login_required
def account_setting():
    if request.method == 'POST':
        username = request.form.get('username', '').strip()
        if not username:
            flash("닉네임을 입력해 주세요.")
            return redirect(url_for('account_setting'))
        try:
            update_profile(current_user, username, request.form.get('role'))
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("[회원] 프로필 저장 실패 user=%s", current_user.id)
            flash("프로필 저장 중 오류가 발생했습니다.")
            return redirect(url_for('account_setting'))
        flash("프로필이 저장되었습니다.")
        return redirect(url_for('profile'))
    return render_page("""
    <div class="max-w-md mx-auto mt-16 p-10 bg-white rounded-[3rem] border">
        <h2 class="text-2xl font-black mb-8">계정 설정</h2>
        <form method="post" class="space-y-4">
            <p class="text-xs text-gray-400">{{ current_user.email }}</p>
            <input name="username" value="{{ current_user.username or '' }}" placeholder="닉네임" class="w-full p-5 bg-gray-50 rounded-2xl font-black text-sm" required>
            {% if not current_user.is_admin %}
            <select name="role" class="w-full p-5 bg-gray-50 rounded-2xl font-black text-sm">
                {% for r in roles %}<option value="{{ r }}" {% if current_user.role == r %}selected{% endif %}>{{ role_text[r] }}</option>{% endfor %}
            </select>
            {% endif %}
            <button class="w-full bg-emerald-600 text-white py-4 rounded-2xl font-black">저장</button>
        </form>
    </div>""", roles=SELECTABLE_ROLES, role_text=ROLE_TEXT)


@app.route('/api/profile', methods=['POST'])
def api_profile():
    if not current_user.is_authenticated:
        return jsonify({"message": "Unauthorized"}), 401
    data = request.get_json(silent=True) or {}
    if str(data.get('user_id')) != str(current_user.id):
        return jsonify({"message": "Unauthorized: Cannot update another user's profile"}), 403
    try:
        update_profile(current_user, (data.get('username') or '').strip() or current_user.username, data.get('role'))
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("[회원] 프로필 API 저장 실패 user=%s", current_user.id)
        return jsonify({"message": str(e)}), 500
    return jsonify({"message": "Profile updated successfully"}), 200


@app.route('/profile')
@login_required
def profile():
    reviews = Review.query.filter_by(user_id=current_user.id).order_by(Review.created_at.desc()).all()
    stores = active_stores().filter(Store.user_id == current_user.id).all()
    applications = (StoreApplication.query.filter_by(user_id=current_user.id)
                    .order_by(StoreApplication.created_at.desc()).all())
    return render_page("""
    <div class="max-w-3xl mx-auto py-12 px-4 space-y-6">
        <div class="bg-white border rounded-3xl p-8 flex justify-between items-center">
            <div>
                <p class="text-2xl font-black">{{ current_user.username or '이름 없음' }}</p>
                <p class="text-sm text-gray-400">{{ current_user.email }} · {{ role_text.get(current_user.role, current_user.role) }}</p>
            </div>
            <a href="{{ url_for('account_setting') }}" class="text-xs font-black text-emerald-600">계정 설정</a>
        </div>
        <div class="bg-white border rounded-3xl p-8">
            <div class="flex justify-between mb-4"><h3 class="font-black">내 매장</h3><a href="{{ url_for('store.store_register') }}" class="text-xs font-black text-emerald-600">입점 신청</a></div>
            {% for s in stores %}
            <div class="flex justify-between py-3 border-t text-sm">
                <a href="{{ url_for('store_details', store_id=s.id) }}" class="font-bold">{{ s.store_name }}</a>
                <a href="{{ url_for('store.store_products', store_id=s.id) }}" class="text-xs font-black text-gray-500">관리</a>
            </div>
            {% else %}<p class="text-sm text-gray-400">운영 중인 매장이 없습니다.</p>{% endfor %}
            {% for a in applications %}
            <p class="text-xs text-gray-400 py-1">{{ a.business_name }} · {{ ['심사중', '승인', '반려'][a.status] if a.status in (0, 1, 2) else '' }}</p>
            {% endfor %}
        </div>
        <div class="bg-white border rounded-3xl p-8">
            <h3 class="font-black mb-4">내 리뷰</h3>
            {% for r in reviews %}
            <div class="py-3 border-t text-sm">
                <p class="font-bold">{{ r.store.store_name if r.store else '' }} <span class="text-yellow-500">{{ '★' * r.rating }}</span></p>
                <p class="text-gray-500">{{ r.review_text or '' }}</p>
            </div>
            {% else %}<p class="text-sm text-gray-400">작성한 리뷰가 없습니다.</p>{% endfor %}
        </div>
    </div>""", reviews=reviews, stores=stores, applications=applications, role_text=ROLE_TEXT)


# --------------------------------------------------------------------------------
# 3. 매장 / 상품 (공개 페이지)
# --------------------------------------------------------------------------------
@app.route('/')
def index():
    stores = active_stores().order_by(Store.created_at.desc()).limit(20).all()
    sgt_products = (active_products().filter(Product.is_sgt_product.is_(True))
                    .order_by(Product.created_at.desc()).limit(8).all())
    content = """
    <div class="max-w-6xl mx-auto py-10 px-4 space-y-12">
        <section class="bg-emerald-600 text-white rounded-[3rem] p-10">
            <p class="text-3xl font-black tracking-tighter">우리 동네 상점, 상가톡</p>
            <p class="mt-2 text-emerald-100 font-bold">SGT 로 결제하고 동네 가게의 소식을 받아보세요.</p>
            <div class="flex gap-3 mt-6 text-sm font-black">
                <a href="/stores/categories" class="bg-white text-emerald-700 px-5 py-3 rounded-2xl">업종별 보기</a>
                <a href="/stores/locations" class="bg-emerald-700 px-5 py-3 rounded-2xl">내 주변 매장</a>
            </div>
        </section>
        <section><h2 class="text-xl font-black mb-4">새로 입점한 매장</h2>""" + STORE_CARDS_HTML + """</section>
        <section>
            <div class="flex justify-between mb-4"><h2 class="text-xl font-black">SGT 상품</h2><a href="/sgt/products" class="text-xs font-black text-emerald-600">더보기</a></div>
            {% with products = sgt_products %}""" + PRODUCT_CARDS_HTML + """{% endwith %}
        </section>
    </div>"""
    return render_page(content, stores=stores, sgt_products=sgt_products)


@app.route('/search')
def search_view():
    q = request.args.get('q', '').strip()
    stores, products = [], []
    if q:
        like = f"%{q}%"
        stores = active_stores().filter(or_(Store.store_name.ilike(like), Store.description.ilike(like))).all()
        products = active_products().filter(
            or_(Product.product_name.ilike(like), Product.description.ilike(like))).all()
    content = """
    <div class="max-w-6xl mx-auto py-10 px-4 space-y-10">
        <h2 class="text-2xl font-black">'{{ q }}' 검색 결과</h2>
        <section><h3 class="font-black mb-4">매장 {{ stores|length }}</h3>""" + STORE_CARDS_HTML + """</section>
        <section><h3 class="font-black mb-4">상품 {{ products|length }}</h3>""" + PRODUCT_CARDS_HTML + """</section>
    </div>"""
    return render_page(content, q=q, stores=stores, products=products)


@app.route('/stores/categories')
def store_categories():
    categories = Category.query.order_by(Category.id.asc()).all()
    category_id = request.args.get('category', type=int)
    query = active_stores()
    if category_id:
        query = query.filter(Store.category_id == category_id)
    stores = query.order_by(Store.created_at.desc()).all()
    content = """
    <div class="max-w-6xl mx-auto py-10 px-4">
        <div class="flex flex-wrap gap-2 mb-8 text-xs font-black">
            <a href="?" class="px-4 py-2 rounded-xl {% if not category_id %}bg-emerald-600 text-white{% else %}bg-white border{% endif %}">전체</a>
            {% for c in categories %}
            <a href="?category={{ c.id }}" class="px-4 py-2 rounded-xl {% if category_id == c.id %}bg-emerald-600 text-white{% else %}bg-white border{% endif %}">{{ c.category_name }}</a>
            {% endfor %}
        </div>""" + STORE_CARDS_HTML + """
    </div>"""
    return render_page(content, categories=categories, category_id=category_id, stores=stores)


def stores_by_distance(lat, lng):
    """좌표가 있는 매장. 기준 좌표가 주어지면 가까운 순"""
    stores = active_stores().filter(Store.latitude.isnot(None), Store.longitude.isnot(None)).all()
    if lat is None or lng is None:
        return stores, {}
    distances = {s.id: haversine_meters(lat, lng, s.latitude, s.longitude) for s in stores}
    stores.sort(key=lambda s: distances[s.id])
    return stores, distances


@app.route('/stores/locations')
def store_locations():
    lat = parse_float(request.args.get('lat'))
    lng = parse_float(request.args.get('lng'))
    stores, distances = stores_by_distance(lat, lng)
    content = """
    <div class="max-w-6xl mx-auto py-10 px-4">
        <div class="flex justify-between items-center mb-6">
            <h2 class="text-2xl font-black">내 주변 매장</h2>
            <button onclick="locate()" class="px-4 py-2 bg-emerald-600 text-white rounded-xl text-xs font-black">현재 위치로 정렬</button>
        </div>""" + STORE_CARDS_HTML + """
    </div>
    <script>
    function locate() {
        navigator.geolocation.getCurrentPosition(function (pos) {
            location.href = '?lat=' + pos.coords.latitude + '&lng=' + pos.coords.longitude;
        });
    }
    </script>"""
    return render_page(content, stores=stores, distances=distances)


@app.route('/stores/<int:store_id>')
def store_details(store_id):
    store = db.session.get(Store, store_id)
    if store is None or store.deleted_at is not None:
        abort(404)
    products = (Product.query.filter_by(store_id=store.id, status=PRODUCT_ACTIVE)
                .order_by(Product.created_at.desc()).all())
    reviews = Review.query.filter_by(store_id=store.id).order_by(Review.created_at.desc()).all()
    avg_rating = db.session.query(func.avg(Review.rating)).filter(Review.store_id == store.id).scalar()
    content = """
    <div class="max-w-5xl mx-auto py-10 px-4 space-y-8">
        <div class="bg-white border rounded-[2.5rem] overflow-hidden">
            {% if store.image_url %}<img src="{{ store.image_url }}" class="w-full h-64 object-cover">{% endif %}
            <div class="p-8">
                <p class="text-3xl font-black">{{ store.store_name }}</p>
                <p class="text-sm text-gray-400 mt-1">{{ store.category.category_name if store.category else '' }} · {{ store.address or '' }}</p>
                <p class="text-sm mt-1">{{ store.phone_number or '' }} {% if store.operating_hours %}· {{ store.operating_hours }}{% endif %}</p>
                {% if avg_rating %}<p class="text-yellow-500 font-black mt-2">★ {{ '%.1f'|format(avg_rating) }} <span class="text-gray-400 text-xs">({{ reviews|length }})</span></p>{% endif %}
                {% if store.description %}<p class="mt-4 text-gray-600">{{ store.description }}</p>{% endif %}
            </div>
        </div>
        {% if store.markdown_content %}<div class="bg-white border rounded-[2.5rem] p-8 prose max-w-none">{{ render_markdown(store.markdown_content)|safe }}</div>{% endif %}
        <section><h3 class="text-xl font-black mb-4">상품</h3>""" + PRODUCT_CARDS_HTML + """</section>
        <section class="bg-white border rounded-[2.5rem] p-8">
            <h3 class="text-xl font-black mb-4">리뷰</h3>
            {% if current_user.is_authenticated %}
            <form method="post" action="{{ url_for('wallet.review_submit') }}" class="flex flex-col gap-2 mb-6">
                <input type="hidden" name="store_id" value="{{ store.id }}">
                <select name="rating" class="px-4 py-3 bg-gray-50 rounded-2xl">{% for i in range(5, 0, -1) %}<option value="{{ i }}">{{ '★' * i }}</option>{% endfor %}</select>
                <textarea name="review_text" placeholder="리뷰를 남겨주세요" class="px-4 py-3 bg-gray-50 rounded-2xl"></textarea>
                <button class="bg-emerald-600 text-white py-3 rounded-2xl font-black">리뷰 등록</button>
            </form>
            {% endif %}
            {% for r in reviews %}
            <div class="py-3 border-t text-sm">
                <p class="font-bold">{{ r.user.username if r.user and r.user.username else '익명' }} <span class="text-yellow-500">{{ '★' * r.rating }}</span></p>
                <p class="text-gray-500">{{ r.review_text or '' }}</p>
            </div>
            {% else %}<p class="text-sm text-gray-400">아직 리뷰가 없습니다.</p>{% endfor %}
        </section>
    </div>"""
    return render_page(content, store=store, products=products, reviews=reviews, avg_rating=avg_rating,
                       page_title=f"{store.store_name} - 상가톡")


@app.route('/stores/<int:store_id>/products/<int:product_id>')
def product_details(store_id, product_id):
    product = db.session.get(Product, product_id)
    if product is None or product.store_id != store_id or product.status != PRODUCT_ACTIVE:
        abort(404)
    if product.store is None or product.store.deleted_at is not None:
        abort(404)
    content = """
    <div class="max-w-4xl mx-auto py-10 px-4 grid md:grid-cols-2 gap-8">
        {% if product.image_url %}<img src="{{ product.image_url }}" class="w-full aspect-square object-cover rounded-[2.5rem]">{% else %}<div class="w-full aspect-square bg-gray-100 rounded-[2.5rem]"></div>{% endif %}
        <div class="space-y-4">
            <a href="{{ url_for('store_details', store_id=product.store_id) }}" class="text-xs font-black text-emerald-600">{{ product.store.store_name }}</a>
            <p class="text-3xl font-black">{{ product.product_name }}</p>
            {% if product.is_sgt_product %}<p class="text-2xl font-black text-emerald-600">{{ format_sgt_price(product.sgt_price) }} SGT</p>{% endif %}
            {% if product.won_price %}<p class="text-xl font-black">{{ format_krw_price(product.won_price) }}원</p>{% endif %}
            <p class="text-xs text-gray-400">배송비 {{ format_krw_price(product.won_delivery_fee) }}원{% if product.sgt_delivery_fee %} / {{ format_sgt_price(product.sgt_delivery_fee) }} SGT{% endif %}</p>
            {% if product.description %}<p class="text-gray-600">{{ product.description }}</p>{% endif %}
        </div>
        {% if product.markdown_content %}<div class="md:col-span-2 bg-white border rounded-[2.5rem] p-8 prose max-w-none">{{ render_markdown(product.markdown_content)|safe }}</div>{% endif %}
    </div>"""
    return render_page(content, product=product)


@app.route('/sgt')
def sgt_intro():
    return render_page("""
    <div class="max-w-3xl mx-auto py-16 px-4 space-y-6">
        <h2 class="text-3xl font-black">SGT 란?</h2>
        <p class="text-gray-600 leading-relaxed">SGT 는 상가톡 가맹점에서 현금처럼 사용하는 포인트 토큰입니다. SGT 카드(NFC) 또는 지갑 주소로 잔액을 확인하고 키오스크와 온라인 주문에서 결제할 수 있습니다.</p>
        <div class="bg-white border rounded-3xl p-6 text-sm font-bold">1 SGT = {{ format_krw_price(rate) }}원</div>
        <div class="flex gap-3 text-sm font-black">
            <a href="/wallet" class="bg-emerald-600 text-white px-5 py-3 rounded-2xl">내 지갑 조회</a>
            <a href="/sgt/products" class="bg-white border px-5 py-3 rounded-2xl">SGT 상품 보기</a>
        </div>
    </div>""", rate=config.SGT_EXCHANGE_RATE)


@app.route('/sgt/products')
def sgt_products():
    products = (active_products().filter(Product.is_sgt_product.is_(True))
                .order_by(Product.created_at.desc()).all())
    return render_page("""
    <div class="max-w-6xl mx-auto py-10 px-4"><h2 class="text-2xl font-black mb-6">SGT 상품</h2>""" +
                       PRODUCT_CARDS_HTML + "</div>", products=products)


# --------------------------------------------------------------------------------
# 4. 고객센터 / 약관 / 안내 페이지
# --------------------------------------------------------------------------------
@app.route('/support/notices')
def support_notices():
    notices = Notice.query.order_by(Notice.is_pinned.desc(), Notice.created_at.desc()).all()
    return render_page("""
    <div class="max-w-3xl mx-auto py-12 px-4">
        <h2 class="text-2xl font-black mb-6">공지사항</h2>
        {% for n in notices %}
        <a href="{{ url_for('support_notice_detail', notice_id=n.id) }}" class="block bg-white border rounded-2xl p-5 mb-3">
            <p class="font-black">{% if n.is_pinned %}<i class="fas fa-thumbtack text-red-400"></i> {% endif %}{{ n.title }}</p>
            <p class="text-xs text-gray-400">{{ n.created_at.strftime('%Y-%m-%d') if n.created_at else '' }}</p>
        </a>
        {% else %}<p class="text-gray-400 text-center p-10">등록된 공지사항이 없습니다.</p>{% endfor %}
    </div>""", notices=notices)


@app.route('/support/notices/<int:notice_id>')
def support_notice_detail(notice_id):
    notice = db.session.get(Notice, notice_id) or abort(404)
    return render_page("""
    <div class="max-w-3xl mx-auto py-12 px-4">
        <a href="{{ url_for('support_notices') }}" class="text-xs font-black text-gray-400">← 목록</a>
        <h2 class="text-2xl font-black mt-4">{{ notice.title }}</h2>
        <p class="text-xs text-gray-400 mb-6">{{ notice.created_at.strftime('%Y-%m-%d') if notice.created_at else '' }}</p>
        <div class="bg-white border rounded-3xl p-8 prose max-w-none">{{ render_markdown(notice.body)|safe }}</div>
    </div>""", notice=notice)


STATIC_PAGES = {
    'privacy': ("개인정보처리방침", "상가톡은 서비스 제공을 위해 필요한 최소한의 개인정보(이메일, 닉네임, 주문 시 배송 정보)를 수집하며, "
                "관계 법령에 따른 보관 기간이 지나면 지체 없이 파기합니다."),
    'terms': ("이용약관", "본 약관은 상가톡이 제공하는 매장 정보, 주문 및 SGT 결제 서비스의 이용 조건을 정합니다."),
    'return-policy': ("환불정책", "상품 수령 후 7일 이내 교환·환불을 요청할 수 있습니다. 음식 등 즉시 소비되는 상품은 "
                      "제조 특성상 단순 변심에 의한 환불이 제한됩니다."),
    'kiosk-tutorial': ("키오스크 사용 안내", "매장 관리 > 키오스크 탭에서 판매할 상품을 켜고, 키오스크 키(QR)로 태블릿에서 "
                       "접속하세요. 주문은 키오스크 탭의 주문 관리에서 확인할 수 있습니다."),
    'download': ("앱 다운로드", "상가톡 앱은 곧 스토어에서 만나보실 수 있습니다. 지금은 모바일 웹으로 모든 기능을 이용할 수 있습니다."),
}


def _static_page(key):
    title, body = STATIC_PAGES[key]
    return render_page("""
    <div class="max-w-3xl mx-auto py-16 px-4">
        <h2 class="text-2xl font-black mb-6">{{ title }}</h2>
        <div class="bg-white border rounded-3xl p-8 text-gray-600 leading-relaxed">{{ body }}</div>
    </div>""", title=title, body=body, page_title=f"{title} - 상가톡")


@app.route('/privacy')
def privacy():
    return _static_page('privacy')


@app.route('/terms')
def terms():
    return _static_page('terms')


@app.route('/return-policy')
def return_policy():
    return _static_page('return-policy')


@app.route('/kiosk-tutorial')
def kiosk_tutorial():
    return _static_page('kiosk-tutorial')


@app.route('/download')
def download():
    return _static_page('download')


# --------------------------------------------------------------------------------
# 5. 데이터베이스 초기화
# --------------------------------------------------------------------------------
DEFAULT_CATEGORIES = (
    ("음식점", "식당·분식·배달 음식"),
    ("카페", "카페·디저트·베이커리"),
    ("생활", "편의점·생활용품·세탁"),
    ("뷰티", "미용실·네일·화장품"),
    ("기타", "그 외 업종"),
)


def init_db():
    """테이블 생성 + 기초 데이터 (업종 카테고리, 최고 관리자 권한)"""
    db.create_all()
    if not Category.query.first():
        for name, description in DEFAULT_CATEGORIES:
            db.session.add(Category(category_name=name, description=description))
    if config.SUPER_ADMIN_EMAIL:
        admin = User.query.filter_by(email=config.SUPER_ADMIN_EMAIL).first()
        if admin is not None and admin.role != ROLE_SUPER_ADMIN:
            admin.role = ROLE_SUPER_ADMIN
            logger.info("[초기화] %s 최고 관리자 권한 부여", admin.email)
    db.session.commit()


# 프로덕션(gunicorn 등) 앱 로드 시 테이블 생성
with app.app_context():
    init_db()


if __name__ == "__main__":
    # 로컬 테스트 및 Render 배포 호환 포트 설정 (기본 5000)
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=True)
