# =============================================================================
# Eventful - Gunicorn Production Configuration
# =============================================================================
import os
import multiprocessing

# Bind
bind = f"0.0.0.0:{os.environ.get('PORT', '8080')}"

# Workers: 2 * CPU + 1, capped for small instances
workers = int(os.environ.get('WEB_CONCURRENCY', min(multiprocessing.cpu_count() * 2 + 1, 4)))
threads = 2

# Each worker opens its own database pool after fork
preload_app = False

# Timeouts (the gateway client times out well before this)
timeout = 60
graceful_timeout = 30
keepalive = 5

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info")
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(L)s request_id=%({x-request-id}o)s'

# Worker lifecycle
max_requests = 1000
max_requests_jitter = 50

# Webhook bodies are small; keep request limits tight
limit_request_line = 8190
limit_request_fields = 100
limit_request_field_size = 8190

worker_class = "gthread"
forwarded_allow_ips = "*"
