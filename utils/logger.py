import atexit
import logging
import threading
from logging.handlers import RotatingFileHandler, QueueHandler, QueueListener
from queue import Queue
from pathlib import Path
from typing import Dict

from config.settings import LOG_LEVEL, LOG_FILE

# One queue + listener per log file; every logger writing to that file shares them.
_LISTENERS: Dict[str, QueueListener] = {}
_QUEUES: Dict[str, Queue] = {}
_LOCK = threading.Lock()

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _queue_handler_for(log_file: str, max_bytes: int, backup_count: int) -> QueueHandler:
    key = str(Path(log_file))
    with _LOCK:
        if key in _QUEUES:
            return QueueHandler(_QUEUES[key])

        Path(key).parent.mkdir(parents=True, exist_ok=True)
        q: Queue = Queue(-1)

        file_handler = RotatingFileHandler(
            key,
            mode="a",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
            delay=True,
        )
        file_handler.setFormatter(logging.Formatter(_FORMAT))

        listener = QueueListener(q, file_handler, respect_handler_level=True)
        listener.start()
        _QUEUES[key] = q
        _LISTENERS[key] = listener
        return QueueHandler(q)


def stop_listeners():
    """Flush and close every file listener. Registered at exit; safe to call twice."""
    with _LOCK:
        listeners = list(_LISTENERS.values())
        _LISTENERS.clear()
        _QUEUES.clear()
    for listener in listeners:
        try:
            listener.stop()
        except Exception:
            pass


atexit.register(stop_listeners)


def setup_logger(
    name: str,
    log_file: str = LOG_FILE,
    level=LOG_LEVEL,
    max_bytes: int = 1024 * 1024 * 5,
    backup_count: int = 6,
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    # Avoid stacking handlers when a module is re-imported
    if not logger.handlers:
        qh = _queue_handler_for(log_file, max_bytes, backup_count)
        qh.setLevel(level)
        logger.addHandler(qh)

    return logger
