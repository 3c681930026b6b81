# --------------------------------------------------------------------------------
# 데이터베이스 모델
# --------------------------------------------------------------------------------
import uuid
from datetime import datetime, timedelta

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import UniqueConstraint

db = SQLAlchemy()


def get_kst():
    """한국 표준시(UTC+9) 반환 함수"""
    return datetime.utcnow() + timedelta(hours=9)


def _uuid():
    return str(uuid.uuid4())


# 회원 권한
ROLE_CUSTOMER = 'customer'
ROLE_STORE_OWNER = 'store_owner'
ROLE_ADMIN = 'admin'
ROLE_SUPER_ADMIN = 'super_admin'
ROLES = (ROLE_CUSTOMER, ROLE_STORE_OWNER, ROLE_ADMIN, ROLE_SUPER_ADMIN)

# 입점 신청 상태
APPLICATION_PENDING, APPLICATION_APPROVED, APPLICATION_REJECTED = 0, 1, 2

# 매장/신청 유형
STORE_TYPE_LABELS = {0: '온라인 전용', 1: '오프라인 전용', 2: '온·오프라인'}

# 상품 상태
PRODUCT_ACTIVE, PRODUCT_INACTIVE, PRODUCT_DELETED = 0, 1, 2

# 주문 상태 (0~5, 전이 검증 없음)
ORDER_STATUSES = (0, 1, 2, 3, 4, 5)

# 키오스크 주문
KIOSK_ORDER_TYPES = ('kiosk_dine_in', 'kiosk_takeout', 'kiosk_delivery')
KIOSK_ORDER_STATUSES = ('pending_payment', 'processing', 'completed', 'failed', 'ready', 'cancelled')

# 거래 유형
TX_OFFLINE, TX_ONLINE, TX_EXCHANGE_OUT, TX_EXCHANGE_IN, TX_TVL = 0, 1, 2, 3, 4

# 환전 상태
EXCHANGE_PENDING, EXCHANGE_SGT_SENT, EXCHANGE_COMPLETE, EXCHANGE_CANCELED = 0, 1, 2, 3


class User(db.Model, UserMixin):
    """회원 정보 모델"""
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password = db.Column(db.String(200), nullable=True)
    username = db.Column(db.String(50))
    role = db.Column(db.String(20), default=ROLE_CUSTOMER)
    auth_provider = db.Column(db.String(20), nullable=True)
    auth_provider_id = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, default=get_kst)
    updated_at = db.Column(db.DateTime, default=get_kst, onupdate=get_kst)
    __table_args__ = (UniqueConstraint('auth_provider', 'auth_provider_id', name='uq_user_auth_provider'),)

    @property
    def is_admin(self):
        return self.role in (ROLE_ADMIN, ROLE_SUPER_ADMIN)


class Category(db.Model):
    """매장 업종 카테고리"""
    id = db.Column(db.Integer, primary_key=True)
    category_name = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime, default=get_kst)
    updated_at = db.Column(db.DateTime, default=get_kst, onupdate=get_kst)


class StoreApplication(db.Model):
    """입점 신청서 (0: 대기, 1: 승인, 2: 반려)"""
    __tablename__ = "store_application"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    business_name = db.Column(db.String(100), nullable=False)
    owner_name = db.Column(db.String(50))
    business_number = db.Column(db.String(50))
    phone_number = db.Column(db.String(20))
    email = db.Column(db.String(120))
    address = db.Column(db.String(300))
    category_id = db.Column(db.Integer, db.ForeignKey('category.id'), nullable=True)
    description = db.Column(db.Text)
    operating_hours = db.Column(db.String(200))
    website = db.Column(db.String(300))
    referrer_phone_number = db.Column(db.String(20))
    image_url = db.Column(db.String(500))
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    type = db.Column(db.Integer, default=1)
    status = db.Column(db.Integer, default=APPLICATION_PENDING)
    created_at = db.Column(db.DateTime, default=get_kst)
    updated_at = db.Column(db.DateTime, default=get_kst, onupdate=get_kst)

    user = db.relationship('User')
    category = db.relationship('Category')


class Store(db.Model):
    """승인된 매장"""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    category_id = db.Column(db.Integer, db.ForeignKey('category.id'), nullable=True)
    store_name = db.Column(db.String(100), nullable=False)
    store_type = db.Column(db.Integer, default=1)
    description = db.Column(db.Text)
    markdown_content = db.Column(db.Text)
    address = db.Column(db.String(300))
    phone_number = db.Column(db.String(20))
    website_url = db.Column(db.String(300))
    image_url = db.Column(db.String(500))
    business_number = db.Column(db.String(50))
    owner_name = db.Column(db.String(50))
    email = db.Column(db.String(120))
    operating_hours = db.Column(db.String(200))
    store_wallet_address = db.Column(db.String(120))
    kiosk_key = db.Column(db.String(64), unique=True, nullable=True)
    kiosk_dine_in_enabled = db.Column(db.Boolean, default=True)
    kiosk_takeout_enabled = db.Column(db.Boolean, default=True)
    kiosk_delivery_enabled = db.Column(db.Boolean, default=False)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    referrer_phone_number = db.Column(db.String(20))
    created_at = db.Column(db.DateTime, default=get_kst)
    updated_at = db.Column(db.DateTime, default=get_kst, onupdate=get_kst)
    deleted_at = db.Column(db.DateTime, nullable=True)

    owner = db.relationship('User')
    category = db.relationship('Category')


class Product(db.Model):
    """상품 (0: 판매중, 1: 판매중지, 2: 삭제)"""
    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey('store.id'), nullable=False)
    category_id = db.Column(db.Integer, nullable=True)
    product_name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    won_price = db.Column(db.Integer, default=0)
    sgt_price = db.Column(db.Float, nullable=True)
    is_sgt_product = db.Column(db.Boolean, default=False)
    won_delivery_fee = db.Column(db.Integer, default=0)
    won_special_delivery_fee = db.Column(db.Integer, default=0)
    sgt_delivery_fee = db.Column(db.Float, default=0)
    sgt_special_delivery_fee = db.Column(db.Float, default=0)
    image_url = db.Column(db.String(500))
    markdown_content = db.Column(db.Text)
    status = db.Column(db.Integer, default=PRODUCT_ACTIVE)
    is_kiosk_enabled = db.Column(db.Boolean, default=False)
    kiosk_order = db.Column(db.Integer, default=0)
    is_sold_out = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=get_kst)
    updated_at = db.Column(db.DateTime, default=get_kst, onupdate=get_kst)
    deleted_at = db.Column(db.DateTime, nullable=True)

    store = db.relationship('Store', backref=db.backref('products', lazy='dynamic'))


class ProductOptionGroup(db.Model):
    """상품별 옵션 그룹 (single / multiple)"""
    __tablename__ = "product_option_group"
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id'), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey('store.id'), nullable=False)
    group_name = db.Column(db.String(100), nullable=False)
    display_order = db.Column(db.Integer, default=0)
    selection_type = db.Column(db.String(10), default='single')
    group_icon = db.Column(db.String(50))


class ProductOptionChoice(db.Model):
    __tablename__ = "product_option_choice"
    id = db.Column(db.Integer, primary_key=True)
    option_group_id = db.Column(db.Integer, db.ForeignKey('product_option_group.id'), nullable=False)
    choice_name = db.Column(db.String(100), nullable=False)
    price_adjustment = db.Column(db.Float, default=0)
    display_order = db.Column(db.Integer, default=0)
    is_default = db.Column(db.Boolean, default=False)
    is_sold_out = db.Column(db.Boolean, default=False)
    choice_icon = db.Column(db.String(50))


class StoreOptionGroup(db.Model):
    """매장 공통 옵션 그룹 (여러 상품에 연결)"""
    __tablename__ = "store_option_group"
    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey('store.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    icon = db.Column(db.String(50))
    display_order = db.Column(db.Integer, default=0)

    choices = db.relationship('StoreOptionChoice', backref='group', order_by='StoreOptionChoice.display_order',
                              cascade='all, delete-orphan')


class StoreOptionChoice(db.Model):
    __tablename__ = "store_option_choice"
    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey('store_option_group.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    price_impact = db.Column(db.Float, default=0)
    won_price = db.Column(db.Integer, nullable=True)
    sgt_price = db.Column(db.Float, default=0)
    icon = db.Column(db.String(50))
    is_default = db.Column(db.Boolean, default=False)
    display_order = db.Column(db.Integer, default=0)


class ProductGlobalOptionLink(db.Model):
    __tablename__ = "product_global_option_link"
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id'), nullable=False)
    store_option_group_id = db.Column(db.Integer, db.ForeignKey('store_option_group.id'), nullable=False)
    __table_args__ = (UniqueConstraint('product_id', 'store_option_group_id', name='uq_product_option_link'),)


class Wallet(db.Model):
    """SGT 지갑 (NFC 카드 연동)"""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    wallet_address = db.Column(db.String(120), unique=True)
    nfc_id = db.Column(db.String(50), unique=True, nullable=True)
    wallet_name = db.Column(db.String(100))
    balance = db.Column(db.Float, default=0)
    created_at = db.Column(db.DateTime, default=get_kst)


class Transaction(db.Model):
    """SGT 거래 (0: 오프라인, 1: 온라인, 2: 환전출금, 3: 환전입금, 4: TVL)"""
    __tablename__ = "transaction"
    id = db.Column(db.Integer, primary_key=True)
    amount = db.Column(db.Float, nullable=False)
    sender_wallet_address = db.Column(db.String(120), nullable=True)
    receiver_wallet_address = db.Column(db.String(120), nullable=False)
    status = db.Column(db.Integer, default=0)
    type = db.Column(db.Integer, default=TX_OFFLINE)
    notes = db.Column(db.String(500))
    transaction_fee = db.Column(db.Float, default=0)
    created_at = db.Column(db.DateTime, default=get_kst)
    completed_at = db.Column(db.DateTime, nullable=True)


class Order(db.Model):
    """온라인 주문 (0: 주문 접수 ~ 5: 주문 취소)"""
    __tablename__ = "order"
    id = db.Column(db.Integer, primary_key=True)
    wallet_id = db.Column(db.Integer, db.ForeignKey('wallet.id'), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    sgt_total = db.Column(db.Float, default=0)
    won_total = db.Column(db.Integer, default=0)
    sgt_shipping_cost = db.Column(db.Float, default=0)
    won_shipping_cost = db.Column(db.Integer, default=0)
    shipping_address = db.Column(db.String(500))
    recipient_name = db.Column(db.String(50))
    phone_number = db.Column(db.String(20))
    status = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=get_kst)
    updated_at = db.Column(db.DateTime, default=get_kst, onupdate=get_kst)

    items = db.relationship('OrderItem', backref='order', lazy=True)
    user = db.relationship('User')


class OrderItem(db.Model):
    __tablename__ = "order_item"
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('order.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id'), nullable=False)
    quantity = db.Column(db.Integer, default=1)
    won_price = db.Column(db.Integer, default=0)
    sgt_price = db.Column(db.Float, default=0)
    created_at = db.Column(db.DateTime, default=get_kst)

    product = db.relationship('Product')


class Coupon(db.Model):
    """매장 쿠폰 (반경 내 배포)"""
    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey('store.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500))
    warning = db.Column(db.String(500))
    expiry_date = db.Column(db.DateTime, nullable=False)
    radius_meters = db.Column(db.Integer, default=500)
    is_active = db.Column(db.Boolean, default=True)
    max_claims = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=get_kst)


class Review(db.Model):
    """매장 리뷰 (평점 1~5)"""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    wallet_id = db.Column(db.Integer, db.ForeignKey('wallet.id'), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey('order.id'), nullable=True)
    store_id = db.Column(db.Integer, db.ForeignKey('store.id'), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    review_text = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=get_kst)

    user = db.relationship('User')
    store = db.relationship('Store')


class LiquidSupplier(db.Model):
    """유동성 공급자 (환전 처리 주체)"""
    __tablename__ = "liquid_supplier"
    id = db.Column(db.Integer, primary_key=True)
    wallet_id = db.Column(db.Integer, db.ForeignKey('wallet.id'), nullable=True)
    bank_name = db.Column(db.String(50))
    bank_account_no = db.Column(db.String(50))
    registered_at = db.Column(db.DateTime, default=get_kst)


class Policy(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    liquid_supplier_id = db.Column(db.Integer, db.ForeignKey('liquid_supplier.id'), nullable=True)
    rate = db.Column(db.Float, default=0)
    baseline_fee = db.Column(db.Float, default=0)
    title = db.Column(db.String(100))
    content = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=get_kst)


class Exchange(db.Model):
    """환전 요청 (0: 대기, 1: SGT 전송됨, 2: 완료, 3: 취소)"""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey('transaction.id'), nullable=True)
    liquid_supplier_id = db.Column(db.Integer, db.ForeignKey('liquid_supplier.id'), nullable=True)
    policy_id = db.Column(db.Integer, db.ForeignKey('policy.id'), nullable=True)
    sgt_amount = db.Column(db.Float, default=0)
    won_amount = db.Column(db.Integer, default=0)
    supplier_fee = db.Column(db.Float, default=0)
    content = db.Column(db.String(500))
    status = db.Column(db.Integer, default=EXCHANGE_PENDING)
    receiver_wallet_address = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime, default=get_kst)

    transaction = db.relationship('Transaction')
    policy = db.relationship('Policy')
    user = db.relationship('User')


class Notice(db.Model):
    """고객센터 공지사항"""
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    body = db.Column(db.Text)
    is_pinned = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=get_kst)


class KioskSession(db.Model):
    """키오스크 태블릿 세션 (active / disconnected / expired)"""
    __tablename__ = "kiosk_session"
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    store_id = db.Column(db.Integer, db.ForeignKey('store.id'), nullable=False)
    device_identifier = db.Column(db.String(100))
    device_number = db.Column(db.Integer, default=1)
    status = db.Column(db.String(20), default='active')
    created_at = db.Column(db.DateTime, default=get_kst)
    last_active_at = db.Column(db.DateTime, default=get_kst)
    expired_at = db.Column(db.DateTime, nullable=True)


class KioskOrder(db.Model):
    """키오스크 주문. id는 결제 요청 시 PortOne paymentId로 사용"""
    __tablename__ = "kiosk_order"
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    store_id = db.Column(db.Integer, db.ForeignKey('store.id'), nullable=False)
    kiosk_session_id = db.Column(db.String(36), db.ForeignKey('kiosk_session.id'), nullable=True)
    device_number = db.Column(db.Integer, nullable=True)
    order_type = db.Column(db.String(20), nullable=False)
    total_amount = db.Column(db.Float, default=0)
    total_amount_krw = db.Column(db.Integer, default=0)
    status = db.Column(db.String(20), default='pending_payment')
    payment_id = db.Column(db.String(100), nullable=True)
    portone_imp_uid = db.Column(db.String(100), nullable=True)
    payment_provider_details = db.Column(db.JSON, nullable=True)
    delivery_address = db.Column(db.String(500))
    delivery_address_detail = db.Column(db.String(200))
    delivery_zip_code = db.Column(db.String(10))
    delivery_latitude = db.Column(db.Float, nullable=True)
    delivery_longitude = db.Column(db.Float, nullable=True)
    recipient_phone = db.Column(db.String(20))
    notes = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=get_kst)
    updated_at = db.Column(db.DateTime, default=get_kst, onupdate=get_kst)
    paid_at = db.Column(db.DateTime, nullable=True)

    store = db.relationship('Store')
    items = db.relationship('KioskOrderItem', backref='order', lazy=True)


class KioskOrderItem(db.Model):
    __tablename__ = "kiosk_order_item"
    id = db.Column(db.Integer, primary_key=True)
    kiosk_order_id = db.Column(db.String(36), db.ForeignKey('kiosk_order.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id'), nullable=False)
    quantity = db.Column(db.Integer, default=1)
    price_at_purchase = db.Column(db.Float, default=0)
    created_at = db.Column(db.DateTime, default=get_kst)

    product = db.relationship('Product')
    options = db.relationship('KioskOrderItemOption', backref='item', lazy=True)


class KioskOrderItemOption(db.Model):
    __tablename__ = "kiosk_order_item_option"
    id = db.Column(db.Integer, primary_key=True)
    kiosk_order_item_id = db.Column(db.Integer, db.ForeignKey('kiosk_order_item.id'), nullable=False)
    option_group_id = db.Column(db.Integer, nullable=True)
    option_group_name = db.Column(db.String(100))
    option_choice_id = db.Column(db.Integer, nullable=True)
    option_choice_name = db.Column(db.String(100))
    price_impact = db.Column(db.Float, default=0)
    created_at = db.Column(db.DateTime, default=get_kst)
