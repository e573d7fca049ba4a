import logging

from backend.config import LOG_LEVEL

logger = logging.getLogger("ticketdesk")
logger.setLevel(LOG_LEVEL)

# uvicorn reloads can import this module twice; attach the handler once.
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logger.getChild(name)
