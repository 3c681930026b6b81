# gunicorn -c gunicorn_config.py app:app
# Render 등 호스팅: PORT / WEB_CONCURRENCY 환경변수로 바인딩·워커 수 결정
import os

bind = "0.0.0.0:%s" % os.environ.get("PORT", "10000")
workers = int(os.environ.get("WEB_CONCURRENCY", "2"))
# PortOne / SGT 서버 호출 대기 시간보다 길게
timeout = 60
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
worker_tmp_dir = "/dev/shm"
