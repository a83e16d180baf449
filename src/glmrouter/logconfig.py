import logging

LOG_FORMAT = '%(asctime)s:%(name)s:%(levelname)s:%(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_installed: list[logging.Handler] = []


def configure_logging(
    level: int = logging.INFO, log_file: str | None = None
) -> None:
    """Send glmrouter logs to stderr and, optionally, to *log_file*.

    Calling it again replaces the handlers installed by the previous call.
    """
    logger = logging.getLogger("glmrouter")
    while _installed:
        handler = _installed.pop()
        logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    logger.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        _installed.append(handler)
