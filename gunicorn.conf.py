# =============================================================================
# TripFlow - Gunicorn Production Configuration
# =============================================================================
import os
import multiprocessing

wsgi_app = "run:app"

bind = f"0.0.0.0:{os.environ.get('PORT', '8080')}"

# WEB_CONCURRENCY wins, otherwise 2 * CPU + 1 capped at 4
workers = int(os.environ.get('WEB_CONCURRENCY', min(multiprocessing.cpu_count() * 2 + 1, 4)))
threads = int(os.environ.get('GUNICORN_THREADS', 2))
worker_class = "gthread"

preload_app = True

# Report emails download every receipt before sending
timeout = int(os.environ.get('GUNICORN_TIMEOUT', 60))
graceful_timeout = 20
keepalive = 5

accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info")

max_requests = 1000
max_requests_jitter = 50

# Payment webhooks arrive through the platform proxy
forwarded_allow_ips = "*"
