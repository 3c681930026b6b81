# --------------------------------------------------------------------------------
# 유틸리티 (가격 포맷, 주문 상태 표시, 마크다운/리치텍스트 렌더링, 이미지 저장, 권한)
# --------------------------------------------------------------------------------
import math
import os
import re
import secrets
from datetime import datetime
from urllib.parse import urlparse

import bleach
import markdown as md
from bleach.css_sanitizer import CSSSanitizer
from flask import current_app
from flask_login import current_user
from PIL import Image, ImageOps

from models import ROLE_ADMIN, ROLE_SUPER_ADMIN


def format_sgt_price(price):
    """SGT 가격: 천 단위 콤마, 소수점 이하 끝자리 0 제거 (None -> "0")"""
    if price is None:
        return "0"
    price_str = price if isinstance(price, str) else str(price)
    if 'e' in price_str.lower():
        price_str = f"{float(price_str):f}"
    parts = price_str.split(".")
    parts[0] = re.sub(r"\B(?=(\d{3})+(?!\d))", ",", parts[0])
    if len(parts) > 1:
        parts[1] = parts[1].rstrip("0")
        return ".".join(parts) if parts[1] else parts[0]
    return parts[0]


def format_krw_price(price):
    """원화 가격: 천 단위 콤마"""
    if price is None:
        return "0"
    return "{:,}".format(int(round(price)))


def sgt_to_krw(sgt_amount, rate):
    """SGT 금액을 원화로 환산. 0.5 원은 올림"""
    return int(math.floor((sgt_amount or 0) * rate + 0.5))


# --------------------------------------------------------------------------------
# 주문 상태 (0~5). 어떤 상태에서든 어떤 상태로든 변경 가능
# --------------------------------------------------------------------------------
ORDER_STATUS_TEXT = {
    0: "주문 접수",
    1: "결제 완료",
    2: "배송 준비중",
    3: "배송중",
    4: "배송 완료",
    5: "주문 취소",
}

ORDER_STATUS_COLOR = {
    0: "bg-yellow-100 text-yellow-800",
    1: "bg-blue-100 text-blue-800",
    2: "bg-purple-100 text-purple-800",
    3: "bg-indigo-100 text-indigo-800",
    4: "bg-green-100 text-green-800",
    5: "bg-red-100 text-red-800",
}


def get_status_text(status):
    return ORDER_STATUS_TEXT.get(status, "알 수 없음")


def get_status_color(status):
    return ORDER_STATUS_COLOR.get(status, "bg-gray-100 text-gray-800")


def get_status_button_color(status, current_status):
    """현재 상태 버튼은 비활성 색상"""
    if status == current_status:
        return "bg-gray-300 text-gray-700 cursor-not-allowed"
    return f"{get_status_color(status)} hover:opacity-80"


KIOSK_STATUS_TEXT = {
    'pending_payment': "결제 대기",
    'processing': "결제 확인중",
    'completed': "결제 완료",
    'failed': "결제 실패",
    'ready': "준비 완료",
    'cancelled': "주문 취소",
}

KIOSK_ORDER_TYPE_TEXT = {
    'kiosk_dine_in': "매장식사",
    'kiosk_takeout': "포장",
    'kiosk_delivery': "배달",
}


# --------------------------------------------------------------------------------
# 마크다운 / 리치텍스트 (허용 태그만 남기고 정제)
# --------------------------------------------------------------------------------
ALLOWED_TAGS = sorted(set(bleach.sanitizer.ALLOWED_TAGS) | {
    'p', 'br', 'hr', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'pre', 'span', 'div',
    'img', 'table', 'thead', 'tbody', 'tr', 'th', 'td', 'u', 's', 'del', 'sub', 'sup',
})
ALLOWED_ATTRIBUTES = {
    'a': ['href', 'title', 'target', 'rel'],
    'img': ['src', 'alt', 'title', 'width', 'height'],
    'span': ['style'],
    'p': ['style'],
    'td': ['colspan', 'rowspan'],
    'th': ['colspan', 'rowspan'],
}
CSS_SANITIZER = CSSSanitizer()


def sanitize_html(html):
    """에디터에서 저장된 HTML 정제"""
    if not html:
        return ""
    return bleach.clean(html, tags=ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES,
                        protocols=['http', 'https', 'mailto'], css_sanitizer=CSS_SANITIZER, strip=True)


def render_markdown(text):
    """매장/상품 소개 마크다운 -> 정제된 HTML"""
    if not text:
        return ""
    html = md.markdown(text, extensions=['extra', 'nl2br', 'sane_lists'])
    return sanitize_html(html)


# --------------------------------------------------------------------------------
# 이미지 업로드
# --------------------------------------------------------------------------------
def save_uploaded_image(file, prefix='store', size=(800, 800), quality=85):
    """사진 회전 보정(EXIF) + 중앙 크롭 + WebP 변환 저장. 반환: /static/... URL 또는 None"""
    if not file or not file.filename:
        return None
    folder = current_app.config['UPLOAD_FOLDER']
    os.makedirs(folder, exist_ok=True)
    new_filename = f"{prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.webp"
    save_path = os.path.join(folder, new_filename)
    img = Image.open(file)
    img = ImageOps.exif_transpose(img)
    img = ImageOps.fit(img, size, Image.Resampling.LANCZOS)
    if img.mode not in ('RGB', 'RGBA'):
        img = img.convert('RGB')
    img.save(save_path, "WEBP", quality=quality)
    return "/" + save_path.replace(os.sep, "/").lstrip("/")


# --------------------------------------------------------------------------------
# 권한 / 기타
# --------------------------------------------------------------------------------
def is_admin_user(user=None):
    user = user or current_user
    return bool(getattr(user, 'is_authenticated', False)) and user.role in (ROLE_ADMIN, ROLE_SUPER_ADMIN)


def check_store_permission(store):
    """매장 관리 권한: 매장 소유자 또는 관리자"""
    if not current_user.is_authenticated or store is None:
        return False
    if is_admin_user():
        return True
    return store.user_id == current_user.id


def generate_kiosk_key():
    """키오스크 QR 접속용 키"""
    return secrets.token_urlsafe(24)


def normalize_nfc_id(nfc_id):
    """NFC 카드 ID 정규화 (구분자 제거, 대문자)"""
    return re.sub(r"[^0-9A-Za-z]", "", str(nfc_id or "")).upper()


def haversine_meters(lat1, lng1, lat2, lng2):
    """두 좌표 간 거리 (미터)"""
    r = 6371000.0
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dp = math.radians(lat2 - lat1)
    dl = math.radians(lng2 - lng1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * r * math.asin(math.sqrt(a))


def parse_int(value, default=None):
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def parse_float(value, default=None):
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    # nan, inf 거부
    if not math.isfinite(number):
        return default
    return number


def safe_next_url(target, default='/'):
    """로그인 후 이동 경로. 같은 사이트의 상대 경로만 허용"""
    if not target:
        return default
    target = target.strip().replace('\\', '/')
    parsed = urlparse(target)
    if parsed.scheme or parsed.netloc or not target.startswith('/') or target.startswith('//'):
        return default
    return target
