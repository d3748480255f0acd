"""Gunicorn configuration for production deployment.

Reads settings from environment variables (same as config.py). Every
worker builds its own container during lifespan startup, so each worker
holds a separate in-memory result cache.

Usage:
    gunicorn main:app -c gunicorn.conf.py
"""
import os
import multiprocessing

host = os.getenv("HOST", "0.0.0.0")
port = os.getenv("PORT", "3010")
workers_env = os.getenv("WORKERS", "0")  # 0 = auto-calculate
log_level = os.getenv("LOG_LEVEL", "INFO").lower()
debug = os.getenv("DEBUG", "false").lower() == "true"

bind = f"{host}:{port}"

# WORKERS=0 means auto (cpu + 1), WORKERS=N means use N
workers_count = int(workers_env)
workers = workers_count if workers_count > 0 else (multiprocessing.cpu_count() + 1)
worker_class = "uvicorn.workers.UvicornWorker"

# Dataclip queries block a worker thread until the database answers
timeout = int(os.getenv("GUNICORN_TIMEOUT", "300"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", "5"))

max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", "5000"))
max_requests_jitter = int(os.getenv("GUNICORN_MAX_REQUESTS_JITTER", "500"))

accesslog = "-" if not debug else None
errorlog = "-"
loglevel = log_level

proc_name = "dataclips"

preload_app = not debug
