"""
Gunicorn configuration for the book club API.

Env vars that override defaults:
  PORT       — TCP port to bind (default: 8000)
  WORKERS    — number of worker processes (default: 2)
  LOG_LEVEL  — gunicorn log level, shared with the app's logging setup
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Each worker holds its own SQLAlchemy pool of DB_POOL_SIZE connections,
# so WORKERS * DB_POOL_SIZE must stay under the database's connection limit.
workers = int(os.environ.get("WORKERS", "2"))

worker_class = "uvicorn.workers.UvicornWorker"
wsgi_app = "bookclub.main:app"

keepalive = 5
timeout = 120
graceful_timeout = 30

# stdout only; the app's own loggers write there too.
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'
