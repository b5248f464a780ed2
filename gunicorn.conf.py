"""
Gunicorn configuration for the loyalty service.

Redemptions are serialized per customer inside a process and guarded by
versioned updates across processes, so any worker count is safe.
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

workers = int(os.getenv('GUNICORN_WORKERS', '2'))
threads = int(os.getenv('GUNICORN_THREADS', '4'))
worker_class = 'gthread'
timeout = 60
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'loyalty'
preload_app = True
graceful_timeout = 30


def on_starting(server):
    print("[Gunicorn] Starting loyalty service...")


def on_exit(server):
    print("[Gunicorn] Loyalty service shutting down...")
