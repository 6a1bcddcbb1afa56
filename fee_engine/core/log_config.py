import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Attach a single stream handler to the fee_engine logger. Safe to call more than once."""
    logger = logging.getLogger("fee_engine")
    logger.setLevel(level.upper())
    if not any(getattr(h, "_fee_engine", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._fee_engine = True
        logger.addHandler(handler)
