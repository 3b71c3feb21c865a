"""User-facing status notices for queued responder actions"""
import structlog

logger = structlog.get_logger()


class Indicator:
    """Default indicator: writes notices to the log.

    UI front ends subclass this and render pending notices until
    ``clear_pending`` is called with the same key.
    """

    def show_pending(self, key: str, message: str) -> None:
        logger.info("pending_notice", key=key, message=message)

    def clear_pending(self, key: str) -> None:
        logger.debug("pending_notice_cleared", key=key)

    def show_success(self, message: str) -> None:
        logger.info("success_notice", message=message)

    def show_failure(self, message: str) -> None:
        logger.warning("failure_notice", message=message)
