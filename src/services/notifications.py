"""User-facing notifications ("toasts") collected during a request."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Toast:
    level: str
    title: str
    description: Optional[str] = None
    duration_ms: int = 4000


class Toaster:
    def __init__(self) -> None:
        self._toasts: List[Toast] = []

    def _push(self, toast: Toast) -> None:
        log = logger.warning if toast.level == "error" else logger.info
        log("toast[%s] %s%s", toast.level, toast.title, f" ({toast.description})" if toast.description else "")
        self._toasts.append(toast)

    def success(self, title: str, description: Optional[str] = None, duration_ms: int = 3000) -> None:
        self._push(Toast("success", title, description, duration_ms))

    def error(self, title: str, description: Optional[str] = None, duration_ms: int = 5000) -> None:
        self._push(Toast("error", title, description, duration_ms))

    def info(self, title: str, description: Optional[str] = None, duration_ms: int = 4000) -> None:
        self._push(Toast("info", title, description, duration_ms))

    @property
    def toasts(self) -> List[Toast]:
        return list(self._toasts)

    def drain(self) -> List[Dict[str, Any]]:
        out = [asdict(t) for t in self._toasts]
        self._toasts.clear()
        return out
