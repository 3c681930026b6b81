"""
공통 pytest fixture.

DATABASE_URL 을 메모리 SQLite 로 바꾼 뒤 app 을 import 하고,
테스트마다 테이블을 새로 만든다. 외부 HTTP(PortOne, SGT 서버, 구글)는
각 테스트에서 monkeypatch 로 대체한다.
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FLASK_SECRET_KEY"] = "test-secret"
os.environ["SGT_EXCHANGE_RATE"] = "1000"
os.environ["SGT_SERVER_URL"] = "http://sgt.test"
os.environ["PORTONE_WEBHOOK_SECRET"] = ""
os.environ["SUPER_ADMIN_EMAIL"] = ""
os.environ["KIOSK_SESSION_HOURS"] = "4"

import pytest
from werkzeug.security import generate_password_hash

from app import app as flask_app
from models import (db, User, Category, Store, Product, ROLE_CUSTOMER, ROLE_STORE_OWNER, ROLE_ADMIN)


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True)
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


def _make_user(email, role, username=None):
    user = User(email=email, password=generate_password_hash("pw1234"), username=username, role=role)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def customer(app):
    return _make_user("customer@example.com", ROLE_CUSTOMER, "손님")


@pytest.fixture
def owner(app):
    return _make_user("owner@example.com", ROLE_STORE_OWNER, "점주")


@pytest.fixture
def admin(app):
    return _make_user("admin@example.com", ROLE_ADMIN, "관리자")


@pytest.fixture
def category(app):
    cat = Category(category_name="카페", description="카페·디저트")
    db.session.add(cat)
    db.session.commit()
    return cat


@pytest.fixture
def store(owner, category):
    s = Store(
        user_id=owner.id,
        category_id=category.id,
        store_name="송도 커피",
        store_type=1,
        address="인천광역시 연수구 송도동 1",
        phone_number="0321234567",
        kiosk_key="kiosk-key-1",
        kiosk_dine_in_enabled=True,
        kiosk_takeout_enabled=True,
        kiosk_delivery_enabled=True,
        latitude=37.3925,
        longitude=126.6390,
    )
    db.session.add(s)
    db.session.commit()
    return s


@pytest.fixture
def products(store):
    americano = Product(store_id=store.id, product_name="아메리카노", won_price=4500, sgt_price=4.5,
                        is_sgt_product=True, is_kiosk_enabled=True, kiosk_order=0)
    latte = Product(store_id=store.id, product_name="카페라떼", won_price=5000, sgt_price=5,
                    is_kiosk_enabled=True, kiosk_order=1)
    db.session.add_all([americano, latte])
    db.session.commit()
    return americano, latte


def login(client, user):
    with client.session_transaction() as sess:
        sess["_user_id"] = str(user.id)
        sess["_fresh"] = True


def flashes(client):
    with client.session_transaction() as sess:
        return [message for _, message in sess.get("_flashes", [])]
