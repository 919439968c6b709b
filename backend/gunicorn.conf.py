# gunicorn.conf.py
# Gunicorn configuration file

import logging
import os

# Logging
accesslog = '-'  # Log to stdout
errorlog = '-'   # Log to stderr
loglevel = 'info'

# Worker configuration
workers = int(os.environ.get('WEB_CONCURRENCY', 2))
worker_class = 'sync'
# Performance scrapes wait on the scraping API for up to a minute
timeout = 120

# Server mechanics
bind = f"0.0.0.0:{os.environ.get('PORT', 5001)}"
daemon = False
pidfile = None
umask = 0
user = None
group = None
tmp_upload_dir = None

# Hooks
def post_worker_init(worker):
    """
    Called after a worker has been forked and initialized.
    Each worker keeps its own pool alive.
    """
    logger = logging.getLogger(__name__)
    logger.info(f"=== Post-worker init hook called for worker PID {os.getpid()} ===")

    try:
        import db_utils
        db_utils.start_keepalive_thread()
        logger.info(f"Keepalive thread started in gunicorn worker PID {os.getpid()}")
    except Exception as e:
        logger.error(f"Error starting keepalive thread in gunicorn worker: {e}", exc_info=True)


def worker_exit(server, worker):
    """
    Called when a worker exits.
    """
    logger = logging.getLogger(__name__)
    logger.info(f"Worker {worker.pid} exiting - stopping keepalive thread")

    try:
        import db_utils
        db_utils.stop_keepalive_thread()
        db_utils.close_connection_pool()
    except Exception as e:
        logger.error(f"Error stopping keepalive thread: {e}")
