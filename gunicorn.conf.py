"""
gunicorn.conf.py — Production server settings
==============================================
Picked up automatically by `gunicorn` run from the repo root.

Each send holds its worker thread for up to SMTP_TIMEOUT per SMTP command,
so the server runs several threaded workers.

  PORT              — Listen port (default: 3001)
  WEB_CONCURRENCY   — Worker processes (default: 2 x CPUs + 1)
  GUNICORN_THREADS  — Threads per worker (default: 4)
"""

import multiprocessing
import os

wsgi_app = 'main:create_app()'
bind = f"0.0.0.0:{os.environ.get('PORT', '3001')}"

worker_class = 'gthread'
workers = int(os.environ.get('WEB_CONCURRENCY', multiprocessing.cpu_count() * 2 + 1))
threads = int(os.environ.get('GUNICORN_THREADS', 4))

timeout = 60
graceful_timeout = 30
accesslog = '-'
