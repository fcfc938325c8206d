"""Page-view logging and best-effort visitor counting."""

import logging
from typing import Optional

from src.services.queries import BackendQueries

logger = logging.getLogger(__name__)


def track_page_view(path: str, principal: Optional[str] = None) -> None:
    logger.info("Page view: %s%s", path, f" ({principal})" if principal else "")


async def record_visit(queries: BackendQueries, path: str) -> bool:
    """Log the view and bump the remote visitor counter. Never raises."""
    track_page_view(path)
    try:
        await queries.record_visitor()
    except Exception as exc:
        logger.warning("Failed to record visitor for %s: %s", path, exc)
        return False
    return True
