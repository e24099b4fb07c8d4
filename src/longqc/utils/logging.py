"""
Logging utilities for LongQC.
Sets up logging to the console and an optional log file. Reads may be written to
stdout, so console logging always goes to stderr.
"""

import logging
import sys
import multiprocessing
from pathlib import Path
from logging.handlers import QueueHandler, QueueListener
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_file: Optional[Path] = None, quiet: bool = False):
    """
    Setup logging to stderr (INFO, or WARNING when quiet) and optionally to a DEBUG log file.
    Supports multiprocessing via a QueueListener.

    :param log_file: Optional path of a log file to write DEBUG records to.
    :param quiet: Only show warnings and errors on the console.
    :return: A tuple of (queue, listener); the queue is passed to worker processes.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING if quiet else logging.INFO)
    console_handler.setFormatter(formatter)
    handlers = [console_handler]

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # Queue for multiprocessing
    queue = multiprocessing.Manager().Queue(-1)

    listener = QueueListener(queue, *handlers, respect_handler_level=True)
    listener.start()

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in root.handlers[:]:
        root.removeHandler(h)
    root.addHandler(QueueHandler(queue))

    if log_file is not None:
        root.info(f"Logging initialized. Log file: {log_file}")

    return queue, listener


def worker_configurer(queue):
    """
    Configure a worker process to log to the central queue.
    """
    h = QueueHandler(queue)
    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(h)
    root.setLevel(logging.DEBUG)


def shutdown_logging(listener):
    """
    Stop the queue listener and detach the queue handlers from the root logger.
    """
    listener.stop()
    root = logging.getLogger()
    for h in root.handlers[:]:
        if isinstance(h, QueueHandler):
            root.removeHandler(h)
