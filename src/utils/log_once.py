"""
Log predictable errors only once per key.

Health checks and retried queries fail the same way many times in a row; this
keeps the log readable while a backend is down. At most MAX_LOGGED_KEYS keys
are remembered; the oldest is forgotten first.
"""

import logging
from collections import OrderedDict
from typing import Any, Optional

logger = logging.getLogger(__name__)

MAX_LOGGED_KEYS = 1024

_logged_keys: "OrderedDict[str, None]" = OrderedDict()


def log_once(key: str, message: str, data: Optional[Any] = None, *, log: Optional[logging.Logger] = None) -> bool:
    """Log ``message`` at error level unless ``key`` was already logged. Returns True if it logged."""
    if key in _logged_keys:
        return False
    _logged_keys[key] = None
    while len(_logged_keys) > MAX_LOGGED_KEYS:
        _logged_keys.popitem(last=False)

    target = log or logger
    if data is not None:
        target.error("[%s] %s %s", key, message, data)
    else:
        target.error("[%s] %s", key, message)
    return True


def clear_logged_error(key: str) -> None:
    _logged_keys.pop(key, None)


def clear_all_logged_errors() -> None:
    _logged_keys.clear()
