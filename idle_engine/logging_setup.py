"""Logging configuration for hosts embedding the engine."""

import logging
from typing import Optional, Union

from .security.redaction import RedactingFilter, Redactor

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Union[int, str] = logging.INFO,
                      redactor: Optional[Redactor] = None) -> Redactor:
    """
    Configure root logging and attach a redacting filter to its handlers.

    Args:
        level: Log level name ('debug', 'info', 'warn', 'error') or number
        redactor: Redactor to use (a new one is created when omitted)

    Returns:
        The redactor attached to the handlers
    """
    if isinstance(level, str):
        name = level.upper()
        if name == 'WARN':
            name = 'WARNING'
        level = getattr(logging, name)

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger('idle_engine').setLevel(level)

    redactor = redactor or Redactor()
    log_filter = RedactingFilter(redactor)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(log_filter)
    return redactor
