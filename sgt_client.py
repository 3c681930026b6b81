# --------------------------------------------------------------------------------
# SGT 토큰 서버 연동 (환전 승인 / 완료 / 소각)
# --------------------------------------------------------------------------------
import logging

import requests

import config

logger = logging.getLogger(__name__)

SGT_TIMEOUT = 15


class SgtServerError(Exception):
    """SGT 서버 호출 실패. message 는 서버의 detail 값"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _post(path, payload, default_error):
    if not config.SGT_SERVER_URL:
        raise SgtServerError("SGT 서버 주소(SGT_SERVER_URL)가 설정되지 않았습니다.")
    url = f"{config.SGT_SERVER_URL}{path}"
    try:
        res = requests.post(url, json=payload, timeout=SGT_TIMEOUT)
    except requests.RequestException as e:
        logger.error("[SGT서버] %s 요청 실패: %s", path, e)
        raise SgtServerError(f"SGT 서버 연결 실패: {e}") from e

    if not res.ok:
        try:
            detail = (res.json() or {}).get('detail')
        except ValueError:
            detail = None
        logger.error("[SGT서버] %s 오류 status=%s detail=%s", path, res.status_code, detail)
        raise SgtServerError(detail or default_error, status_code=res.status_code)

    try:
        return res.json()
    except ValueError:
        return {}


def approve_won_to_sgt(exchange_id, receiver_wallet_address, sgt_amount, content=None, created_at=None):
    """원화 -> SGT 환전 승인 (SGT 를 수신 지갑으로 전송)"""
    payload = {
        'exchange_id': exchange_id,
        'receiver_wallet_address': receiver_wallet_address,
        'sgt_amount': sgt_amount,
        'content': content or f"원화로 SGT 구매 - {str(exchange_id)[:8]}",
        'created_at': created_at.isoformat() if created_at else None,
    }
    return _post('/transactions/approve-won-to-sgt', payload, 'Failed to approve exchange')


def complete_sgt_to_won(exchange_id):
    """SGT -> 원화 환전 완료 처리"""
    return _post('/transactions/complete-sgt-to-won', {'exchange_id': exchange_id}, 'Failed to complete exchange')


def process_sgt_burn(exchange_id, sender_wallet_address, sgt_amount, created_at=None):
    payload = {
        'exchange_id': exchange_id,
        'sender_wallet_address': sender_wallet_address,
        'sgt_amount': sgt_amount,
        'content': f"SGT 소각 처리 - {str(exchange_id)[:8]}",
        'created_at': created_at.isoformat() if created_at else None,
    }
    return _post('/transactions/process-sgt-burn', payload, 'Failed to process SGT burn')
