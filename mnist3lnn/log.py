"""
log.py
~~~~~~

Logging setup shared by the command line tool and the API server.
"""

import logging
import os
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

NOISY_LOGGERS = [
    'socketio', 'engineio', 'engineio.server', 'socketio.server', 'werkzeug',
]


def configure_logging(level: Optional[str] = None) -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging

    Args:
        level: Log level name; defaults to $LOG_LEVEL or INFO
    """
    log_level_str = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    # In production, silence noisy third-party logs but keep our logs visible
    if is_production:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('mnist3lnn').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)
        logging.getLogger('mnist3lnn').setLevel(log_level)
