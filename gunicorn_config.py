# Gunicorn Production Configuration
# One worker process: the checkout in-flight guard lives in process memory,
# so duplicate submissions for a tab must land in the same process.
# Threads still let slow invoice submissions overlap with cart requests.
workers = 1
threads = 8
worker_class = 'gthread'

# Resilience
timeout = 120
max_requests = 1000
max_requests_jitter = 100
keepalive = 5

# Logging
accesslog = '-'       # Stdout
errorlog = '-'        # Stderr
loglevel = 'info'
capture_output = True
