"""
The contract shared by every bibliographic data provider.

Concrete providers implement the ``_search``/``_get_items``/``_get_variations``
hooks and may raise freely inside them. The public methods on
``BookSearchProvider`` are the provider boundary: they never raise, every
failure comes back as a failed ``ProviderResult``.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout
from pydantic import BaseModel, ValidationError

from app.internal.models import ExternalRecord, ProviderResult
from app.util.exceptions import (
    MalformedProviderResponseError,
    ProviderError,
    ProviderHttpError,
    ProviderRateLimitedError,
    ProviderTimeoutError,
    handle_external_api_error,
    handle_validation_error,
)
from app.util.log import logger

MAX_BATCH_IDS = 10


class SearchOptions(BaseModel):
    max_results: int = 20
    region: Optional[str] = None
    locale: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    pages: Optional[int] = None


class BookSearchProvider(ABC):
    name: str
    priority: int

    def __init__(self, client_session: ClientSession):
        self.client_session = client_session

    @abstractmethod
    def is_enabled(self) -> bool: ...

    @abstractmethod
    async def _search(self, query: str, options: SearchOptions) -> ProviderResult: ...

    @abstractmethod
    async def _get_items(self, ids: list[str]) -> ProviderResult: ...

    @abstractmethod
    async def _get_variations(self, external_id: str) -> ProviderResult: ...

    def get_priority(self) -> int:
        return self.priority

    def search_url(self, query: str, options: Optional[SearchOptions] = None) -> Optional[str]:
        """Marketplace search URL for ``query``. Only link-only providers have one."""
        return None

    async def search(
        self, query: str, options: Optional[SearchOptions] = None
    ) -> ProviderResult:
        options = options or SearchOptions()
        if not self.is_enabled():
            return self.failure(f"{self.name} is disabled")
        query = query.strip()
        if not query:
            return self.failure("Empty search query")
        logger.debug("Provider search", provider=self.name, query=query)
        return await self._guard(self._search(query, options), "search", query=query)

    async def get_items(self, ids: list[str]) -> ProviderResult:
        """Batch lookup by external id. Only the first 10 ids are used."""
        if not self.is_enabled():
            return self.failure(f"{self.name} is disabled")
        ids = [i for i in ids if i][:MAX_BATCH_IDS]
        if not ids:
            return self.failure("No ids given")
        return await self._guard(self._get_items(ids), "get items", ids=ids)

    async def get_variations(self, external_id: str) -> ProviderResult:
        if not self.is_enabled():
            return self.failure(f"{self.name} is disabled")
        if not external_id:
            return self.failure("No id given")
        return await self._guard(
            self._get_variations(external_id), "get variations", external_id=external_id
        )

    async def _guard(self, coro, operation: str, **context: Any) -> ProviderResult:
        try:
            return await coro
        except ProviderRateLimitedError as e:
            logger.warning("Provider rate limited", provider=self.name, **context)
            return self.failure(str(e))
        except ValidationError as e:
            handle_validation_error(e, f"{self.name} response", **context)
            return self.failure(f"{self.name} returned an unexpected response")
        except asyncio.TimeoutError as e:
            handle_external_api_error(e, self.name, operation, **context)
            return self.failure(f"{self.name} request timed out")
        except (ClientError, ProviderError) as e:
            handle_external_api_error(e, self.name, operation, **context)
            return self.failure(f"{self.name} error: {e}")

    def transform_each(
        self, items: Iterable[Any], transform: Callable[[Any], Optional[ExternalRecord]]
    ) -> list[ExternalRecord]:
        """Apply ``transform`` per item, dropping items that are missing data or malformed."""
        records = []
        for item in items:
            try:
                record = transform(item)
            except (ValidationError, ValueError, TypeError, KeyError, AttributeError) as e:
                logger.warning(
                    "Dropping malformed provider item",
                    provider=self.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            if record is not None:
                records.append(record)
        return records

    def failure(self, message: str) -> ProviderResult:
        return ProviderResult.failure(self.name, message)

    def result(
        self, books: list[ExternalRecord], empty_message: str = "No books found"
    ) -> ProviderResult:
        return ProviderResult.from_books(self.name, books, empty_message)

    async def _get_json(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        timeout: float = 10.0,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        try:
            async with self.client_session.get(
                url,
                params=params,
                headers=headers,
                timeout=ClientTimeout(total=timeout),
            ) as response:
                if response.status == 429:
                    raise ProviderRateLimitedError(self.name)
                if not response.ok:
                    raise ProviderHttpError(
                        self.name,
                        f"HTTP {response.status}",
                        status=response.status,
                    )
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise MalformedProviderResponseError(
                        self.name, f"Invalid JSON: {e}"
                    ) from e
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(self.name, f"timed out after {timeout}s") from e
