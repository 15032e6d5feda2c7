"""
Clover REST API client for paginated collections.
Uses limit/offset pagination. Base URL from clover_base_url or clover_environment (sandbox vs production).
Transient failures (429, 408, 5xx, network, timeout) are retried with exponential backoff per page.
"""

import asyncio
import httpx
import structlog
from typing import Any, Awaitable, Callable, Dict, List, Optional

from possync.config import settings
from possync.integrations.clover.models import CloverPage
from possync.utils.retry import PermanentError, TransientError, retry_with_backoff

logger = structlog.get_logger()

SANDBOX_BASE_URL = "https://apisandbox.dev.clover.com"
PRODUCTION_BASE_URL = "https://api.clover.com"

PageHandler = Callable[[List[Dict[str, Any]]], Awaitable[None]]


class CloverAPIError(Exception):
    """Raised when Clover API returns an error or cannot be reached."""

    def __init__(self, status_code: int, message: str, body: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.body = body
        super().__init__(f"Clover API error {status_code}: {message}")

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)


def resolve_base_url() -> str:
    """Explicit clover_base_url wins; otherwise pick by clover_environment."""
    if settings.clover_base_url and settings.clover_base_url.strip():
        return settings.clover_base_url.strip().rstrip("/")
    if settings.clover_environment.lower() == "sandbox":
        return SANDBOX_BASE_URL
    return PRODUCTION_BASE_URL


def extract_records(data: Any) -> List[Dict[str, Any]]:
    """
    Normalize the three collection envelopes Clover endpoints return:
    {"elements": [...]}, {"items": [...]} or a bare array.
    Anything else is treated as an empty page.
    """
    if isinstance(data, dict):
        if isinstance(data.get("elements"), list):
            return data["elements"]
        if isinstance(data.get("items"), list):
            return data["items"]
        return []
    if isinstance(data, list):
        return data
    return []


class CloverAPIClient:
    """Async client for Clover REST API collections, authenticated per merchant."""

    def __init__(
        self,
        access_token: str,
        base_url: Optional[str] = None,
        page_size: Optional[int] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_initial_delay: Optional[float] = None,
        pagination_delay: Optional[float] = None,
    ):
        """
        Initialize the Clover API client.

        Args:
            access_token: Bearer token (merchant API token or OAuth access token).
            base_url: Override base URL. If None, uses resolve_base_url().
            page_size: Default limit for paginated requests.
            timeout: Per-request timeout in seconds.
            max_attempts: Attempts per page request before giving up.
            retry_initial_delay: First backoff delay in seconds (doubles per retry).
            pagination_delay: Pause between consecutive page requests.
        """
        self.access_token = access_token.strip()
        self.base_url = (base_url or resolve_base_url()).rstrip("/")
        self.page_size = settings.clover_page_size if page_size is None else page_size
        self.timeout = timeout if timeout is not None else settings.clover_request_timeout_seconds
        self.pagination_delay = (
            pagination_delay
            if pagination_delay is not None
            else settings.clover_pagination_delay_seconds
        )
        self._client: Optional[httpx.AsyncClient] = None
        self._get_json_with_retry = retry_with_backoff(
            max_attempts=max_attempts or settings.clover_max_retry_attempts,
            initial_delay=(
                retry_initial_delay
                if retry_initial_delay is not None
                else settings.clover_retry_initial_delay_seconds
            ),
            multiplier=2.0,
            max_delay=settings.clover_retry_max_delay_seconds,
        )(self._get_json)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "CloverAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        client = await self._get_client()
        response = await client.get(
            f"{self.base_url}{path}",
            headers=self._headers(),
            params=params,
        )
        response.raise_for_status()
        return response.json()

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a Clover path with retries, returning the decoded JSON body.

        Raises:
            CloverAPIError: On a permanent error or once retries are exhausted.
        """
        try:
            return await self._get_json_with_retry(path, params)
        except (TransientError, PermanentError) as e:
            cause = e.__cause__
            status_code = 0
            body = None
            if isinstance(cause, httpx.HTTPStatusError):
                status_code = cause.response.status_code
                body = cause.response.text
            logger.error(
                "Clover API request failed",
                path=path,
                params=params,
                status_code=status_code,
                body=body[:500] if body else None,
                retryable=isinstance(e, TransientError),
                error=str(cause or e),
            )
            raise CloverAPIError(
                status_code,
                f"GET {path} failed: {cause or e}",
                body=body,
            ) from e

    async def fetch_page(
        self,
        path: str,
        limit: Optional[int] = None,
        offset: int = 0,
        params: Optional[Dict[str, Any]] = None,
    ) -> CloverPage:
        """
        Fetch one page of a collection.

        GET {path}?limit={limit}&offset={offset}&...params

        Returns:
            CloverPage with normalized records; more_available is False on a short page.
        """
        limit = self.page_size if limit is None else limit
        if limit <= 0:
            raise ValueError("limit must be greater than zero")
        query = {**(params or {}), "limit": limit, "offset": offset}
        data = await self.get(path, params=query)
        records = extract_records(data)
        return CloverPage(records=records, more_available=len(records) >= limit)

    async def fetch_paged(
        self,
        path: str,
        handler: PageHandler,
        limit: Optional[int] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        Page through a collection, awaiting handler(records) once per non-empty page.
        Stops on an empty page or a page shorter than limit.

        Args:
            path: Collection path, e.g. /v3/merchants/{mId}/items.
            handler: Async callback receiving each page's records in order.
            limit: Page size (defaults to the client's page_size).
            params: Extra query parameters (e.g. expand=lineItems).

        Returns:
            Number of records handed to handler.

        Raises:
            CloverAPIError: When a page cannot be fetched; pages already handled stay handled.
        """
        limit = self.page_size if limit is None else limit
        offset = 0
        total = 0

        while True:
            page = await self.fetch_page(path, limit=limit, offset=offset, params=params)
            if not page.records:
                break
            await handler(page.records)
            total += len(page.records)
            if not page.more_available:
                break
            offset += len(page.records)
            if self.pagination_delay:
                await asyncio.sleep(self.pagination_delay)

        logger.debug("Clover collection exhausted", path=path, records=total)
        return total

    async def get_merchant(self, merchant_id: str) -> Dict[str, Any]:
        """
        Fetch merchant profile (name etc.).

        GET /v3/merchants/{mId}
        """
        data = await self.get(f"/v3/merchants/{merchant_id}")
        return data if isinstance(data, dict) else {}
