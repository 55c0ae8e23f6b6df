"""
Gunicorn configuration for the journal API.

Env vars that override defaults:
  PORT       TCP port to bind
  WORKERS    number of worker processes (default: 2)
  LOG_LEVEL  gunicorn log level (default: info)

Route handlers are sync and run on each worker's threadpool; a finish
request holds one thread while its model calls run.
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

workers = int(os.environ.get("WORKERS", "2"))

# Uvicorn's ASGI event loop inside Gunicorn's process manager.
worker_class = "uvicorn.workers.UvicornWorker"

keepalive = 5

# Must exceed LLM_TIMEOUT_SECONDS plus database time for finish / summary generation.
timeout = 120

# stdout only; the platform captures it.
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

graceful_timeout = 30
