"""
Sequential cursor pagination with per-page timeouts.
"""
import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

import httpx

from orderhub.core.config import settings
from orderhub.core.exceptions import IntegrationAPIError
from orderhub.core.logging import get_logger

if TYPE_CHECKING:
    from orderhub.integrations.base import Page

logger = get_logger(__name__)

PageFetcher = Callable[[Optional[str]], Awaitable["Page"]]


@dataclass
class PageCollection:
    """Everything fetched before pagination stopped, plus why it stopped early."""

    items: list[dict[str, Any]] = field(default_factory=list)
    requests: int = 0
    error: Optional[str] = None

    @property
    def partial(self) -> bool:
        return self.error is not None


async def collect_pages(
    fetch: PageFetcher,
    *,
    page_timeout: Optional[float] = None,
    max_pages: Optional[int] = None,
    label: str = "",
) -> PageCollection:
    """
    Page through `fetch(cursor)` one request at a time.

    Stops on an empty page, a missing cursor, a cursor already seen, or after
    `max_pages` requests. A failing or timed-out page, or hitting the cap while
    the source still has pages, ends the loop and the items gathered so far are
    returned with the error attached.
    """
    page_timeout = page_timeout if page_timeout is not None else settings.sync_page_timeout_seconds
    max_pages = max_pages if max_pages is not None else settings.sync_max_pages

    collection = PageCollection()
    cursor: Optional[str] = None
    seen: set[str] = set()

    while collection.requests < max_pages:
        page_number = collection.requests + 1
        try:
            page = await asyncio.wait_for(fetch(cursor), timeout=page_timeout)
        except asyncio.TimeoutError:
            collection.error = f"Page {page_number} timed out after {page_timeout:g}s"
        except (IntegrationAPIError, httpx.HTTPError) as e:
            collection.error = f"Page {page_number} failed: {e}"
        finally:
            collection.requests = page_number

        if collection.error:
            logger.warning(
                "Pagination stopped early",
                source=label,
                page=page_number,
                fetched=len(collection.items),
                error=collection.error,
            )
            break

        if not page.items:
            break
        collection.items.extend(page.items)

        next_cursor = page.next_cursor
        if not next_cursor:
            break
        if next_cursor == cursor or next_cursor in seen:
            logger.warning("Adapter repeated a pagination cursor", source=label, cursor=next_cursor)
            break
        seen.add(next_cursor)
        cursor = next_cursor
    else:
        collection.error = f"Stopped after {max_pages} pages with more remaining"
        logger.warning("Pagination page cap reached", source=label, max_pages=max_pages)

    return collection
