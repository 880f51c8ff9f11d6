# fulfillment/utils/logging.py
import logging
import sys

from fulfillment.utils.settings import LOG_LEVEL

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(logging.Formatter(_FORMAT))

_root = logging.getLogger("fulfillment")
_root.setLevel(LOG_LEVEL.upper())
if not _root.handlers:
    _root.addHandler(_handler)
_root.propagate = False


def get_logger(name: str) -> logging.Logger:
    # every module logger hangs off the "fulfillment" logger
    if not name.startswith("fulfillment"):
        name = f"fulfillment.{name}"
    return logging.getLogger(name)
