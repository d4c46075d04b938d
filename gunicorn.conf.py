# Gunicorn configuration for AutoDash

import os

# Serve the application factory; a ConfigError here stops the boot
wsgi_app = "app:create_app()"

# A full refresh backfills every project day, which can take minutes
timeout = 600

# One worker so the refresh flag and scheduler are not duplicated across processes
workers = 1
threads = 4

# Bind to PORT from environment
bind = f"0.0.0.0:{os.environ.get('PORT', '3000')}"

# Logging
accesslog = "-"
errorlog = "-"
loglevel = "info"
