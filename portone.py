# --------------------------------------------------------------------------------
# PortOne(포트원) V2 결제 API 연동
# - 결제 단건 조회, 웹훅 서명 검증
# --------------------------------------------------------------------------------
import base64
import hashlib
import hmac
import logging
import time

import requests

import config

logger = logging.getLogger(__name__)

# PortOne 결제 상태 (이 밖의 값은 인식할 수 없는 응답으로 처리)
PAYMENT_STATUSES = ('READY', 'PENDING', 'VIRTUAL_ACCOUNT_ISSUED', 'PAID', 'FAILED', 'PARTIAL_CANCELLED', 'CANCELLED')

# 웹훅 타임스탬프 허용 오차 (초)
WEBHOOK_TOLERANCE_SECONDS = 5 * 60


class PortOneError(Exception):
    """PortOne API 호출 실패 (네트워크 오류 또는 2xx 외 응답)"""

    def __init__(self, message, status_code=None, error_type=None, data=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.data = data or {}


class WebhookVerificationError(Exception):
    pass


def _auth_headers(secret=None):
    return {
        "Authorization": f"PortOne {secret or config.PORTONE_API_SECRET}",
        "Content-Type": "application/json",
    }


def get_payment(payment_id, secret=None):
    """결제 단건 조회. 반환: PortOne 결제 객체(dict). 실패 시 PortOneError"""
    if not payment_id:
        raise PortOneError("결제 ID가 없습니다.", status_code=400, error_type="INVALID_REQUEST")
    url = f"{config.PORTONE_API_BASE}/payments/{requests.utils.quote(str(payment_id), safe='')}"
    try:
        res = requests.get(url, headers=_auth_headers(secret), timeout=config.PORTONE_TIMEOUT)
    except requests.RequestException as e:
        logger.error("[PortOne] 결제 조회 요청 실패 payment_id=%s: %s", payment_id, e)
        raise PortOneError(f"PortOne 연결 실패: {e}") from e

    try:
        data = res.json()
    except ValueError:
        data = {}

    if res.status_code != 200:
        error_type = data.get("type") if isinstance(data, dict) else None
        message = (data.get("message") if isinstance(data, dict) else None) or f"HTTP {res.status_code}"
        logger.error("[PortOne] 결제 조회 오류 payment_id=%s status=%s body=%s", payment_id, res.status_code, data)
        raise PortOneError(message, status_code=res.status_code, error_type=error_type, data=data)
    return data


def is_unrecognized_payment(payment):
    """응답이 알려진 결제 상태 형태가 아니면 True"""
    if not isinstance(payment, dict):
        return True
    if payment.get("status") not in PAYMENT_STATUSES:
        return True
    amount = payment.get("amount")
    return not isinstance(amount, dict) or "total" not in amount


def payment_total(payment):
    amount = (payment or {}).get("amount") or {}
    return amount.get("total")


def verify_webhook(secret, body, headers):
    """Standard Webhooks 규격 서명 검증. 실패 시 WebhookVerificationError

    서명 대상: "{webhook-id}.{webhook-timestamp}.{body}" 를 HMAC-SHA256 후 base64.
    webhook-signature 헤더는 "v1,<sig> v1,<sig2>" 형태로 여러 개일 수 있다.
    """
    lower = {k.lower(): v for k, v in (headers or {}).items()}
    msg_id = lower.get("webhook-id")
    timestamp = lower.get("webhook-timestamp")
    signature_header = lower.get("webhook-signature")
    if not (msg_id and timestamp and signature_header):
        raise WebhookVerificationError("웹훅 서명 헤더가 없습니다.")
    try:
        ts = int(timestamp)
    except ValueError:
        raise WebhookVerificationError("웹훅 타임스탬프 형식 오류")
    if abs(time.time() - ts) > WEBHOOK_TOLERANCE_SECONDS:
        raise WebhookVerificationError("웹훅 타임스탬프가 허용 범위를 벗어났습니다.")

    key = secret[len("whsec_"):] if secret.startswith("whsec_") else secret
    try:
        key_bytes = base64.b64decode(key)
    except (ValueError, TypeError):
        key_bytes = key.encode()
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    signed = f"{msg_id}.{timestamp}.{body}".encode()
    expected = base64.b64encode(hmac.new(key_bytes, signed, hashlib.sha256).digest()).decode()

    for part in signature_header.split():
        version, _, sig = part.partition(",")
        if version == "v1" and hmac.compare_digest(sig, expected):
            return True
    raise WebhookVerificationError("웹훅 서명이 일치하지 않습니다.")
