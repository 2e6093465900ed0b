#!/usr/bin/env python3
"""
Logging Configuration for JCBot
Console output plus rotating files under logs/latest_log, one set per session.
The engine components get their own file so booking timing can be replayed.
"""

import os
import logging
import logging.handlers
import shutil
from datetime import datetime

# Same switch as AppSettings.production_mode
PRODUCTION_MODE = os.getenv('PRODUCTION_MODE', 'false').strip().lower() in {'1', 'true', 'yes', 'on'}

LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'logs', 'latest_log')

# Loggers that make up the acquisition engine
ENGINE_LOGGERS = (
    'ClockSync',
    'PageClassifier',
    'RetryController',
    'CourtFallback',
    'BookingSubmission',
    'BrowserSession',
    'BookingRunner',
)

# file name -> (level in production, level in development, max MB, backups); None skips the file
LOG_FILES = {
    'jcbot.log': (logging.WARNING, logging.INFO, 10, 5),
    'jcbot_debug.log': (None, logging.DEBUG, 50, 3),
    'jcbot_errors.log': (logging.ERROR, logging.ERROR, 5, 5),
}
ENGINE_LOG_FILE = 'booking_engine.log'

DETAILED_FORMAT = (
    '%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - '
    '[%(filename)s:%(lineno)d in %(funcName)s()] - %(message)s'
)
CONSOLE_FORMAT = '%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s'


def _clear_previous_session(log_dir: str) -> None:
    """Empty ``log_dir`` so it only holds the current session's logs."""
    if not os.path.exists(log_dir):
        return
    for filename in os.listdir(log_dir):
        file_path = os.path.join(log_dir, filename)
        try:
            if os.path.isdir(file_path) and not os.path.islink(file_path):
                shutil.rmtree(file_path)
            else:
                os.unlink(file_path)
        except OSError as e:
            print(f'Failed to delete {file_path}. Reason: {e}')


def _rotating_handler(filename: str, level: int, max_mb: int, backups: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        os.path.join(LOG_DIR, filename),
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding='utf-8',
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    return handler


def setup_logging() -> None:
    """
    Install console and rotating file handlers on the root logger.
    Engine loggers additionally write to booking_engine.log, even in production.
    """
    _clear_previous_session(LOG_DIR)
    os.makedirs(LOG_DIR, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.WARNING if PRODUCTION_MODE else logging.DEBUG)
    root_logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING if PRODUCTION_MODE else logging.INFO)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
    root_logger.addHandler(console_handler)

    written = []
    for filename, (production_level, development_level, max_mb, backups) in LOG_FILES.items():
        level = production_level if PRODUCTION_MODE else development_level
        if level is None:
            continue
        root_logger.addHandler(_rotating_handler(filename, level, max_mb, backups))
        written.append(filename)

    engine_level = logging.INFO if PRODUCTION_MODE else logging.DEBUG
    engine_handler = _rotating_handler(ENGINE_LOG_FILE, engine_level, 20, 5)
    for name in ENGINE_LOGGERS:
        component_logger = logging.getLogger(name)
        component_logger.handlers = [engine_handler]
        component_logger.setLevel(engine_level)

    # Reduce noise from external libraries
    for noisy in ('httpx', 'httpcore', 'asyncio'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.info("=" * 80)
    root_logger.info(f"JCBot Logging Initialized - {datetime.now()}")
    root_logger.info(f"Production Mode: {'ON' if PRODUCTION_MODE else 'OFF'}")
    root_logger.info(f"Log directory: {LOG_DIR} ({', '.join(written + [ENGINE_LOG_FILE])})")
    root_logger.info("=" * 80)


# Initialize logging when module is imported
setup_logging()
