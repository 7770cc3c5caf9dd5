"""
Fire-and-forget runner for side effects that must not hold up the response:
QR rendering and commerce-platform sync.
Each task runs on a daemon thread with its own database connection.
"""
import logging
import threading
from django.conf import settings
from django.db import connection, transaction

logger = logging.getLogger('orders')


def _guarded(func, label):
    try:
        func()
    except Exception:
        logger.exception(f"Background task '{label}' failed")


def _worker(func, label):
    try:
        _guarded(func, label)
    finally:
        # Connections are per thread; release the one this worker opened
        connection.close()


def run_in_background(func, label=''):
    """
    Run `func` outside the request thread. Failures are logged, never raised.

    With SIDE_EFFECTS_INLINE the task runs immediately in the calling thread
    (test settings: an in-memory SQLite database is not shared across threads).

    Returns:
        The started thread, or None when run inline
    """
    if getattr(settings, 'SIDE_EFFECTS_INLINE', False):
        _guarded(func, label)
        return None

    thread = threading.Thread(target=_worker, args=(func, label), name=f"side-effect-{label}", daemon=True)
    thread.start()
    return thread


def on_commit_in_background(func, label=''):
    """Schedule `func` to run in the background once the current transaction commits."""
    transaction.on_commit(lambda: run_in_background(func, label))
