# --------------------------------------------------------------------------------
# 설정·상수 (환경변수 기반)
# --------------------------------------------------------------------------------
import os

from dotenv import load_dotenv

load_dotenv()

SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "").strip() or "sanggatalk_default_fallback_key"
DATABASE_URL = os.getenv("DATABASE_URL", "").strip() or "sqlite:///sanggatalk.db"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

# 슈퍼관리자 이메일 (최초 실행 시 super_admin 권한 부여)
SUPER_ADMIN_EMAIL = os.getenv("SUPER_ADMIN_EMAIL", "").strip().lower()

# 결제 연동 (PortOne V2)
PORTONE_API_BASE = (os.getenv("PORTONE_API_BASE") or "").strip().rstrip("/") or "https://api.portone.io"
PORTONE_API_SECRET = os.getenv("PORTONE_API_SECRET", "").strip()
PORTONE_STORE_ID = os.getenv("PORTONE_STORE_ID", "").strip()
PORTONE_CHANNEL_KEY = os.getenv("PORTONE_CHANNEL_KEY", "").strip()
# 웹훅 서명 검증용 시크릿 (whsec_...). 비어 있으면 서명 검증 생략
PORTONE_WEBHOOK_SECRET = os.getenv("PORTONE_WEBHOOK_SECRET", "").strip()
PORTONE_TIMEOUT = int(os.getenv("PORTONE_TIMEOUT", "15").strip() or "15")

# 도로명주소 팝업 (juso.go.kr) 승인키
JUSO_CONFM_KEY = os.getenv("JUSO_CONFM_KEY", "").strip()

# SGT 토큰 서버 (환전 승인/완료 API)
SGT_SERVER_URL = os.getenv("SGT_SERVER_URL", "").strip().rstrip("/")
# 1 SGT 당 원화 환율
SGT_EXCHANGE_RATE = float(os.getenv("SGT_EXCHANGE_RATE", "1000").strip() or "1000")

# 키오스크 세션 유효 시간 (시간 단위). 마지막 활동 이후 이 시간이 지나면 만료 처리
KIOSK_SESSION_HOURS = int(os.getenv("KIOSK_SESSION_HOURS", "4").strip() or "4")

# 파일 업로드 경로
UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", "").strip() or os.path.join("static", "uploads")

# 구글 로그인
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "").strip()
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "").strip()
OAUTH_REDIRECT_BASE = (os.getenv("OAUTH_REDIRECT_BASE") or os.getenv("SITE_URL") or "").strip().rstrip("/")
