# Gunicorn configuration for nORM
# Content generation and cron fan-out requests can run for minutes

# Worker settings
workers = 2
worker_class = 'sync'

# Timeout settings - cron jobs walk every client sequentially
timeout = 600
graceful_timeout = 120
keepalive = 5

# Logging
accesslog = '-'
errorlog = '-'
loglevel = 'info'

# Request handling
max_requests = 1000
max_requests_jitter = 50

# Bind
bind = '0.0.0.0:5000'
