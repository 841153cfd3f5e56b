"""
User-facing notifications.
"""

import logging

logger = logging.getLogger(__name__)


class Notifier:
    """
    Transient user notifications (toasts in a GUI, lines in a terminal).

    The base implementation writes to the log.
    """

    def success(self, message: str) -> None:
        logger.info(message)

    def info(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.error(message)
