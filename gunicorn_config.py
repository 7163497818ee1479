import os

from config import ProductionConfig

# Server socket
port = int(os.environ.get('PORT', 5000))
bind = f'0.0.0.0:{port}'

# Worker processes
# Each worker holds its own MongoDB client; the page cache lives in MongoDB
workers = int(os.environ.get('WEB_CONCURRENCY', ProductionConfig.WORKERS))
worker_class = 'sync'
worker_connections = 1000

# Logging
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()
accesslog = '-'  # Log to stdout
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s"'
errorlog = '-'  # Log to stderr
capture_output = True

# Timeouts
timeout = ProductionConfig.TIMEOUT
keepalive = ProductionConfig.KEEP_ALIVE

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190

# Performance
max_requests = ProductionConfig.MAX_REQUESTS
max_requests_jitter = ProductionConfig.MAX_REQUESTS_JITTER

# Debugging
reload = os.environ.get('FLASK_ENV') == 'development'
