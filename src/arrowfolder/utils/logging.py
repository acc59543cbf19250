import logging


def get_logger(name: str = "main") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(name)s - %(levelname)s - [%(threadName)s] %(message)s"))
        logger.addHandler(handler)
    return logger
