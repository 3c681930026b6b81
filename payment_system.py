# --------------------------------------------------------------------------------
# 결제 검증 API (PortOne)
# - /api/portone/verify-payment : 결제 상태·금액 확인만 수행
# - /api/payment/complete       : 키오스크 주문 결제 완료 처리
# - /api/payment/webhook        : PortOne 웹훅 수신
# --------------------------------------------------------------------------------
import json
import logging

from flask import Blueprint, request, jsonify
from sqlalchemy.exc import SQLAlchemyError

import config
import portone
from models import db, KioskOrder, get_kst

logger = logging.getLogger(__name__)

payment_bp = Blueprint('payment', __name__)


@payment_bp.route('/api/portone/verify-payment', methods=['POST'])
def verify_payment():
    """결제 단건 검증: 상태가 PAID 이고 (요청 시) 금액이 일치하면 verified"""
    try:
        body = request.get_json(silent=True) or {}
        imp_uid = body.get('imp_uid')
        merchant_uid = body.get('merchant_uid')
        amount_to_check = body.get('amount_to_check')

        if not imp_uid or not merchant_uid:
            return jsonify({'error': 'Missing imp_uid or merchant_uid'}), 400

        try:
            payment = portone.get_payment(imp_uid)
        except portone.PortOneError as e:
            if e.status_code is None:
                raise
            logger.error("[결제검증] PortOne 조회 오류 merchant_uid=%s: %s", merchant_uid, e.message)
            return jsonify({'verified': False, 'message': 'PortOne API error during verification'}), e.status_code

        status = payment.get('status')
        if status == 'PAID':
            total = portone.payment_total(payment)
            if amount_to_check and total != amount_to_check:
                logger.warning("[결제검증] 금액 불일치 merchant_uid=%s 요청=%s 실제=%s", merchant_uid, amount_to_check, total)
                return jsonify({'verified': False, 'message': 'Amount mismatch after verification',
                                'paymentStatus': status}), 400
            return jsonify({'verified': True, 'message': 'Payment verified successfully', 'payment': payment})

        return jsonify({'verified': False, 'message': f'Payment not completed. Status: {status}', 'payment': payment})
    except Exception:
        logger.exception("[결제검증] 내부 오류")
        return jsonify({'verified': False, 'message': 'Internal server error during payment verification'}), 500


@payment_bp.route('/api/payment/complete', methods=['POST'])
def payment_complete():
    """키오스크 주문 결제 완료 처리

    paymentId: 키오스크 주문 ID, impUid: PortOne 거래 ID.
    이미 completed/failed 인 주문은 상태만 응답하고 다시 처리하지 않는다.
    """
    logger.info("[결제완료] 요청 수신 %s", get_kst().isoformat())
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        logger.error("[결제완료] 잘못된 요청 본문")
        return jsonify({'status': 'FAILED', 'message': 'Invalid request body.'}), 400

    kiosk_order_id = body.get('paymentId')
    imp_uid = body.get('impUid')
    if not kiosk_order_id:
        logger.error("[결제완료] paymentId(키오스크 주문 ID) 누락")
        return jsonify({'status': 'FAILED', 'message': 'Missing paymentId (kioskOrderId).'}), 400
    if not imp_uid:
        # 브라우저 SDK 흐름에서는 주문 ID가 곧 PortOne paymentId 이므로 그대로 조회
        logger.warning("[결제완료] impUid 누락, 주문 ID로 조회 kiosk_order_id=%s", kiosk_order_id)
        imp_uid = kiosk_order_id

    try:
        payment = portone.get_payment(imp_uid)
        if portone.is_unrecognized_payment(payment):
            logger.error("[결제완료] 인식할 수 없는 결제 응답 imp_uid=%s: %s", imp_uid, payment)
            return jsonify({'status': 'FAILED', 'message': 'PortOne에서 인식할 수 없는 결제 응답을 받았습니다.'}), 500

        amount_paid = portone.payment_total(payment)
        status = str(payment.get('status'))
        portone_id = payment.get('id') or imp_uid
        logger.info("[결제완료] PortOne 결제 금액=%s 상태=%s id=%s", amount_paid, status, portone_id)

        order = db.session.get(KioskOrder, kiosk_order_id)
        if not order:
            logger.error("[결제완료] 주문 없음 kiosk_order_id=%s", kiosk_order_id)
            return jsonify({'status': 'FAILED', 'message': '주문 정보를 찾을 수 없습니다.'}), 404

        if order.status == 'completed':
            return jsonify({'status': 'PAID', 'message': '이미 처리된 주문입니다.', 'orderId': kiosk_order_id}), 200
        if order.status == 'failed':
            return jsonify({'status': 'FAILED', 'message': '이미 실패 처리된 주문입니다.', 'orderId': kiosk_order_id}), 200

        amount_to_be_paid = order.total_amount_krw
        if status == 'PAID' and amount_paid == amount_to_be_paid:
            order.status = 'completed'
            order.portone_imp_uid = portone_id
            order.payment_provider_details = payment
            order.paid_at = get_kst()
            try:
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception("[결제완료] 주문 %s completed 업데이트 실패", kiosk_order_id)
                return jsonify({'status': 'FAILED',
                                'message': '결제는 성공했으나 주문 상태 업데이트에 실패했습니다. 관리자에게 문의하세요.'}), 500
            logger.info("[결제완료] 주문 %s 결제 확인 완료 (%s원)", kiosk_order_id, amount_paid)
            return jsonify({'status': 'PAID', 'message': '결제가 성공적으로 완료되었습니다.', 'orderId': kiosk_order_id}), 200

        failure_reason = f"결제 실패 (PortOne 상태: {status})"
        if amount_paid != amount_to_be_paid:
            failure_reason = (f"결제 금액 불일치 (PortOne: {amount_paid}, 주문: {amount_to_be_paid}), "
                              f"PortOne 상태: {status}")
        logger.warning("[결제완료] 검증 실패 주문 %s: %s", kiosk_order_id, failure_reason)
        order.status = 'failed'
        order.portone_imp_uid = portone_id
        order.payment_provider_details = payment
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("[결제완료] 주문 %s failed 업데이트 실패", kiosk_order_id)
        return jsonify({'status': 'FAILED', 'message': failure_reason, 'orderId': kiosk_order_id}), 400

    except portone.PortOneError as e:
        logger.error("[결제완료] PortOne 오류 kiosk_order_id=%s: %s", kiosk_order_id, e.message)
        message = f"PortOne 오류: {e.error_type or 'UNKNOWN'} - {e.message}"
        return jsonify({'status': 'FAILED', 'message': message, 'details': e.message}), 500
    except Exception as e:
        logger.exception("[결제완료] 처리 중 예외")
        return jsonify({'status': 'FAILED', 'message': '결제 처리 중 서버 오류가 발생했습니다.', 'details': str(e)}), 500


@payment_bp.route('/api/payment/webhook', methods=['POST'])
def payment_webhook():
    """PortOne 웹훅 수신. 재전송 방지를 위해 처리 오류도 200으로 응답"""
    raw_body = request.get_data(as_text=True)

    if config.PORTONE_WEBHOOK_SECRET:
        try:
            portone.verify_webhook(config.PORTONE_WEBHOOK_SECRET, raw_body, dict(request.headers))
        except portone.WebhookVerificationError as e:
            logger.error("[웹훅] 서명 검증 실패: %s", e)
            return jsonify({'error': 'Invalid webhook signature'}), 400

    try:
        webhook = json.loads(raw_body)
    except ValueError:
        logger.error("[웹훅] 본문 파싱 실패")
        return jsonify({'error': 'Invalid webhook payload'}), 400

    try:
        logger.info("[웹훅] 수신: %s", webhook)
        data = webhook.get('data') if isinstance(webhook, dict) else None
        payment_id = data.get('paymentId') if isinstance(data, dict) else None
        if payment_id:
            order = KioskOrder.query.filter_by(payment_id=payment_id).first()
            if order:
                order.status = 'processing'
                db.session.commit()
                logger.info("[웹훅] 주문 %s 상태 processing 으로 변경", order.id)
        return jsonify({'status': 'success'})
    except Exception:
        db.session.rollback()
        logger.exception("[웹훅] 처리 오류")
        return jsonify({'status': 'error', 'message': 'Error processing webhook'})
