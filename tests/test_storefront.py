import pytest

import app as app_module
from models import db, get_kst, Store, Category, Notice, PRODUCT_INACTIVE


@pytest.fixture
def far_store(owner, category):
    s = Store(user_id=owner.id, category_id=category.id, store_name="강남 분식", latitude=37.4979,
              longitude=127.0276, address="서울 강남구")
    db.session.add(s)
    db.session.commit()
    return s


def test_home_lists_stores_and_sgt_products(client, store, products):
    body = client.get('/').get_data(as_text=True)
    assert "송도 커피" in body
    assert "아메리카노" in body
    assert "4.5 SGT" in body
    assert "카페라떼" not in body


def test_deleted_store_is_hidden_everywhere(client, store, products):
    store.deleted_at = get_kst()
    db.session.commit()
    assert "송도 커피" not in client.get('/').get_data(as_text=True)
    assert "아메리카노" not in client.get('/sgt/products').get_data(as_text=True)
    assert client.get(f'/stores/{store.id}').status_code == 404
    assert client.get(f'/stores/{store.id}/products/{products[0].id}').status_code == 404


def test_search(client, store, products):
    body = client.get('/search?q=라떼').get_data(as_text=True)
    assert "카페라떼" in body
    assert "아메리카노" not in body
    assert "매장 0" in body

    body = client.get('/search?q=송도').get_data(as_text=True)
    assert "매장 1" in body


def test_categories_filter(client, store, far_store, category):
    other_cat_store = Store(store_name="동네 세탁소", category_id=None)
    db.session.add(other_cat_store)
    db.session.commit()
    body = client.get(f'/stores/categories?category={category.id}').get_data(as_text=True)
    assert "송도 커피" in body and "강남 분식" in body
    assert "동네 세탁소" not in body
    assert "동네 세탁소" in client.get('/stores/categories').get_data(as_text=True)


def test_stores_by_distance_sorts_nearest_first(app, store, far_store):
    stores, distances = app_module.stores_by_distance(37.5665, 126.9780)  # 서울시청
    assert [s.store_name for s in stores] == ["강남 분식", "송도 커피"]
    assert distances[far_store.id] < distances[store.id]

    stores, distances = app_module.stores_by_distance(37.39, 126.64)
    assert stores[0].id == store.id
    assert distances[store.id] < 1000


def test_stores_without_location_are_left_out(app, store, owner):
    db.session.add(Store(user_id=owner.id, store_name="좌표 없음"))
    db.session.commit()
    stores, distances = app_module.stores_by_distance(None, None)
    assert [s.store_name for s in stores] == ["송도 커피"]
    assert distances == {}


def test_locations_page_shows_km(client, store):
    body = client.get('/stores/locations?lat=37.3925&lng=126.6390').get_data(as_text=True)
    assert "0.0km" in body


def test_store_details(client, store, products):
    store.markdown_content = "## 메뉴 안내\n<script>alert(1)</script>"
    db.session.commit()
    body = client.get(f'/stores/{store.id}').get_data(as_text=True)
    assert "송도 커피" in body
    assert "<h2>메뉴 안내</h2>" in body
    assert "<script>alert(1)</script>" not in body


def test_inactive_product_is_404(client, store, products):
    latte = products[1]
    assert client.get(f'/stores/{store.id}/products/{latte.id}').status_code == 200
    latte.status = PRODUCT_INACTIVE
    db.session.commit()
    assert client.get(f'/stores/{store.id}/products/{latte.id}').status_code == 404


def test_product_from_other_store_path_is_404(client, store, far_store, products):
    assert client.get(f'/stores/{far_store.id}/products/{products[0].id}').status_code == 404


def test_notices_pinned_first(client, app):
    db.session.add_all([Notice(title="일반 공지", body="본문"), Notice(title="고정 공지", body="**중요**", is_pinned=True)])
    db.session.commit()
    body = client.get('/support/notices').get_data(as_text=True)
    assert body.index("고정 공지") < body.index("일반 공지")

    pinned = Notice.query.filter_by(is_pinned=True).one()
    assert "<strong>중요</strong>" in client.get(f'/support/notices/{pinned.id}').get_data(as_text=True)
    assert client.get('/support/notices/999').status_code == 404


@pytest.mark.parametrize("url, title", [
    ('/privacy', "개인정보처리방침"),
    ('/terms', "이용약관"),
    ('/return-policy', "환불정책"),
    ('/kiosk-tutorial', "키오스크 사용 안내"),
    ('/download', "앱 다운로드"),
    ('/sgt', "SGT 란?"),
])
def test_static_pages(client, app, url, title):
    res = client.get(url)
    assert res.status_code == 200
    assert title in res.get_data(as_text=True)


def test_init_db_seeds_categories_once(app):
    app_module.init_db()
    app_module.init_db()
    assert Category.query.count() == len(app_module.DEFAULT_CATEGORIES)
