import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "info") -> None:
    """Install a single stream handler on the root logger.

    Safe to call more than once (create_app runs again in tests).
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    if any(getattr(h, "_gateway_handler", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._gateway_handler = True
    root.addHandler(handler)
