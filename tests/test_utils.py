import warnings

import pytest
from bleach.sanitizer import NoCssSanitizerWarning

from utils import (format_sgt_price, format_krw_price, sgt_to_krw, get_status_text, get_status_color,
                   get_status_button_color, normalize_nfc_id, render_markdown, sanitize_html, haversine_meters,
                   parse_int, parse_float, safe_next_url)


@pytest.mark.parametrize("value, expected", [
    (None, "0"),
    (0, "0"),
    (1000.0, "1,000"),
    (1234567.5, "1,234,567.5"),
    ("12.340", "12.34"),
    (999, "999"),
])
def test_format_sgt_price(value, expected):
    assert format_sgt_price(value) == expected


def test_format_krw_price():
    assert format_krw_price(1234567) == "1,234,567"
    assert format_krw_price(None) == "0"


def test_sgt_to_krw_rounds():
    assert sgt_to_krw(4.5, 1000) == 4500
    assert sgt_to_krw(4.56, 1000) == 4560
    assert sgt_to_krw(None, 1000) == 0


def test_sgt_to_krw_rounds_half_up():
    assert sgt_to_krw(2.5, 1001) == 2503
    assert sgt_to_krw(0.5, 1) == 1
    assert sgt_to_krw(1.5, 1) == 2


def test_status_text_covers_all_six_statuses():
    texts = [get_status_text(s) for s in range(6)]
    assert texts == ["주문 접수", "결제 완료", "배송 준비중", "배송중", "배송 완료", "주문 취소"]
    assert get_status_text(9) == "알 수 없음"
    assert get_status_color(9) == "bg-gray-100 text-gray-800"


def test_status_button_color_greys_out_current_status():
    assert "cursor-not-allowed" in get_status_button_color(2, 2)
    assert get_status_button_color(3, 2).startswith(get_status_color(3))


def test_normalize_nfc_id():
    assert normalize_nfc_id("04:a1-b2 c3") == "04A1B2C3"
    assert normalize_nfc_id(None) == ""


def test_render_markdown_strips_scripts():
    html = render_markdown("# 매장 소개\n\n<script>alert(1)</script>\n\n**굵게**")
    assert "<h1>" in html
    assert "<strong>굵게</strong>" in html
    assert "<script" not in html


def test_sanitize_html_drops_unsafe_links():
    html = sanitize_html('<a href="javascript:alert(1)">x</a><p onclick="x()">본문</p>')
    assert "javascript:" not in html
    assert "onclick" not in html
    assert "본문" in html


def test_haversine_meters():
    assert haversine_meters(37.5, 127.0, 37.5, 127.0) == 0
    # 위도 0.01도 ~ 1.1km
    assert haversine_meters(37.5, 127.0, 37.51, 127.0) == pytest.approx(1112, rel=0.01)


def test_parse_helpers():
    assert parse_int(" 7 ") == 7
    assert parse_int("x", 3) == 3
    assert parse_float("1.5") == 1.5
    assert parse_float(None) is None


@pytest.mark.parametrize("value", ["nan", "NaN", "inf", "-inf", "1e999"])
def test_parse_float_rejects_non_finite(value):
    assert parse_float(value) is None
    assert parse_float(value, 0) == 0


def test_sanitize_html_filters_inline_styles():
    with warnings.catch_warnings():
        warnings.simplefilter("error", NoCssSanitizerWarning)
        html = sanitize_html('<span style="color: red; behavior: url(x.htc)">강조</span>')
    assert "color: red" in html
    assert "behavior" not in html
    assert "강조" in html


@pytest.mark.parametrize("target, expected", [
    (None, "/"),
    ("", "/"),
    ("/stores/3?tab=orders", "/stores/3?tab=orders"),
    ("https://evil.example.com/", "/"),
    ("//evil.example.com", "/"),
    ("/\\evil.example.com", "/"),
    ("javascript:alert(1)", "/"),
    ("profile", "/"),
])
def test_safe_next_url(target, expected):
    assert safe_next_url(target) == expected
