import pytest

from juso import convert_coordinates, build_callback_html, JUSO_FIELDS


def test_convert_coordinates_origin_of_utmk():
    # UTM-K 원점(false easting/northing)은 위도 38, 경도 127.5
    lat, lng = convert_coordinates("1000000", "2000000")
    assert lat == pytest.approx(38.0, abs=1e-6)
    assert lng == pytest.approx(127.5, abs=1e-6)


def test_convert_coordinates_seoul_city_hall():
    lat, lng = convert_coordinates(953901.8, 1952035.2)
    assert lat == pytest.approx(37.566, abs=0.01)
    assert lng == pytest.approx(126.978, abs=0.01)


@pytest.mark.parametrize("ent_x, ent_y", [("abc", "1"), (None, "2000000"), ("nan", "2000000"), ("inf", "1")])
def test_convert_coordinates_rejects_invalid_input(ent_x, ent_y):
    with pytest.raises(ValueError):
        convert_coordinates(ent_x, ent_y)


def test_callback_html_passes_every_field_in_order():
    values = {name: name.upper() for name in JUSO_FIELDS}
    html = build_callback_html(values)
    positions = [html.index(f'"{name.upper()}"') for name in JUSO_FIELDS]
    assert positions == sorted(positions)
    assert "jusoCallBack(" in html


def test_callback_escapes_script_breakout(client):
    res = client.post('/api/juso/callback', data={
        'roadFullAddr': '인천 연수구 </script><script>alert(1)</script>',
        'zipNo': '21984',
        'entX': '1000000',
        'entY': '2000000',
    })
    assert res.status_code == 200
    body = res.get_data(as_text=True)
    assert '<\\/script><script>alert(1)<\\/script>' in body
    assert '"21984"' in body


def test_callback_accepts_get(client):
    res = client.get('/api/juso/callback?roadFullAddr=%EC%86%A1%EB%8F%84&zipNo=12345')
    assert res.status_code == 200
    assert '"송도"' in res.get_data(as_text=True)


def test_popup_posts_to_juso_with_coordinate_result(client):
    res = client.get('/juso/popup')
    body = res.get_data(as_text=True)
    assert 'addrCoordUrl.do' in body
    assert 'name="resultType" value="4"' in body
    assert '/api/juso/callback' in body


def test_convert_endpoint(client):
    res = client.get('/api/juso/convert?entX=1000000&entY=2000000')
    assert res.status_code == 200
    assert res.get_json()['lat'] == pytest.approx(38.0, abs=1e-6)

    bad = client.get('/api/juso/convert?entX=abc&entY=1')
    assert bad.status_code == 400
    assert bad.get_json()['message'] == '좌표 변환에 실패했습니다.'
