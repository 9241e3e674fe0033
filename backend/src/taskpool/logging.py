"""
Logging utilities for the engine and Lambda handlers.
"""
import logging
import json

from .config import config

# Configure logger
logger = logging.getLogger('taskpool')
logger.setLevel(config.LOG_LEVEL)

# Add handler if not already configured
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(handler)


def log_event(event: dict) -> None:
    """Log incoming Lambda event for debugging."""
    try:
        # Avoid logging sensitive data
        safe_event = {k: v for k, v in event.items() if k not in ['body', 'headers']}
        logger.info(f"Lambda event: {json.dumps(safe_event, default=str)}")
    except (TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Could not log event: {e}")


def log_transition(name: str, log: logging.Logger = None, **fields) -> None:
    """
    Emit one structured line for a committed slot transition.

    Args:
        name: Transition name (e.g. 'claim', 'approve')
        log: Logger to write to, defaults to the package logger
        **fields: Extra attributes (slotId, actorId, fromStatus, toStatus, ...)
    """
    record = {'transition': name, **fields}
    (log or logger).info(f"Transition: {json.dumps(record, default=str, sort_keys=True)}")
