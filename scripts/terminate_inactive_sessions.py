# --------------------------------------------------------------------------------
# 비활성 키오스크 세션 정리 (Flask 앱 컨텍스트 필요, cron 등에서 주기 실행)
# - dry-run: 종료 없이 대상만 확인
# - 실행: python scripts/terminate_inactive_sessions.py [--dry-run] [--hours=4]
# --------------------------------------------------------------------------------
import os
import sys
import argparse

# 프로젝트 루트를 path에 추가
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def main():
    parser = argparse.ArgumentParser(description="마지막 활동 이후 오래된 키오스크 세션을 만료 처리")
    parser.add_argument("--dry-run", action="store_true", help="실제 종료 없이 대상만 출력")
    parser.add_argument("--hours", type=int, default=None, help="비활성 기준 시간 (기본 KIOSK_SESSION_HOURS)")
    args = parser.parse_args()

    from app import app
    from kiosk_system import find_inactive_sessions, terminate_inactive_sessions

    with app.app_context():
        if args.dry_run:
            sessions, cutoff = find_inactive_sessions(args.hours)
            print(f"[dry-run] 비활성 세션 {len(sessions)}개 (기준: {cutoff:%Y-%m-%d %H:%M:%S})")
            for ks in sessions[:20]:
                print(f"  - {ks.id} 매장={ks.store_id} 기기={ks.device_number} 마지막활동={ks.last_active_at}")
            if len(sessions) > 20:
                print(f"  ... 외 {len(sessions) - 20}개")
            return

        terminated = terminate_inactive_sessions(args.hours)
        print(f"종료된 세션 {len(terminated)}개")
        for sid in terminated:
            print(f"  - {sid}")


if __name__ == "__main__":
    main()
