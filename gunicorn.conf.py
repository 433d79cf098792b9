# Gunicorn configuration for the celnav service
# Navigation state (observations, LOPs, dead reckoning) lives in process memory:
# run a single worker so every request sees the same state.
#
#   gunicorn -c gunicorn.conf.py --chdir server celnav.main:app

import os

workers = int(os.getenv("WORKERS", 1))

# Use Uvicorn workers (async support)
worker_class = "uvicorn.workers.UvicornWorker"

# Binding
bind = f"0.0.0.0:{os.getenv('PORT', 8080)}"

# Timeouts
timeout = 30
keepalive = 2

# State must survive for the life of the process
max_requests = 0
preload_app = True

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info")
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Security
limit_request_line = 2048
limit_request_fields = 32
limit_request_field_size = 4096


def on_starting(server):
    """Called before the master process is initialized"""
    if workers != 1:
        server.log.warning(f"{workers} workers configured: navigation state is not shared between workers")


def on_exit(server):
    """Called when master exits"""
    server.log.info("Master process exiting")


# Environment-specific overrides
if os.getenv("ENVIRONMENT") == "production":
    timeout = 60

    # Enable detailed request logging in production
    capture_output = True
    enable_stdio_inheritance = True
