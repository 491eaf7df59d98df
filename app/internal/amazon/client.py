"""
Thin async client for the Amazon Creators catalog API (searchItems, getItems,
getVariations). Responses are normalized to the PA-API 5.0 PascalCase shape
so the item transformer works on one format.
"""
import asyncio
from typing import Any, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout

from app.internal.amazon.token import PROVIDER_NAME, AmazonOAuthTokenManager
from app.internal.env_settings import AmazonSettings
from app.internal.models import Region
from app.util.exceptions import (
    MalformedProviderResponseError,
    ProviderHttpError,
    ProviderRateLimitedError,
    ProviderTimeoutError,
)
from app.util.log import logger

API_HOST = "https://creatorsapi.amazon"
MAX_ITEM_IDS = 10

MARKETPLACES = {
    Region.BR: "www.amazon.com.br",
    Region.US: "www.amazon.com",
    Region.UK: "www.amazon.co.uk",
    Region.CA: "www.amazon.ca",
}

RESOURCES = [
    "itemInfo.title",
    "itemInfo.features",
    "itemInfo.byLineInfo",
    "itemInfo.contentInfo",
    "itemInfo.contentRating",
    "itemInfo.classifications",
    "itemInfo.productInfo",
    "itemInfo.technicalInfo",
    "itemInfo.externalIds",
    "browseNodeInfo.browseNodes",
    "browseNodeInfo.browseNodes.ancestor",
    "images.primary.large",
    "images.primary.medium",
    "images.primary.small",
    "customerReviews.count",
    "customerReviews.starRating",
]

_EXACT_KEYS = {
    "asin": "ASIN",
    "url": "URL",
    "ean": "EAN",
    "eans": "EANs",
    "isbn": "ISBN",
    "isbns": "ISBNs",
}


def normalize_key(key: str) -> str:
    if key in _EXACT_KEYS:
        return _EXACT_KEYS[key]
    return key[:1].upper() + key[1:]


def normalize_response_keys(data: Any) -> Any:
    """camelCase keys to PascalCase. ``isbns`` is split into ``ISBN13s``/``ISBN10s`` by length."""
    if isinstance(data, list):
        return [normalize_response_keys(value) for value in data]
    if not isinstance(data, dict):
        return data

    result: dict[str, Any] = {}
    for key, value in data.items():
        if key == "isbns" and isinstance(value, dict):
            normalized = normalize_response_keys(value)
            display_values = normalized.pop("DisplayValues", [])
            isbn13s = [v for v in display_values if len(v.replace("-", "").replace(" ", "")) == 13]
            isbn10s = [v for v in display_values if len(v.replace("-", "").replace(" ", "")) == 10]
            if isbn13s:
                result["ISBN13s"] = {**normalized, "DisplayValues": isbn13s}
            if isbn10s:
                result["ISBN10s"] = {**normalized, "DisplayValues": isbn10s}
            continue
        result[normalize_key(key)] = normalize_response_keys(value)
    return result


class AmazonCreatorsClient:
    def __init__(
        self,
        client_session: ClientSession,
        settings: AmazonSettings,
        token_manager: AmazonOAuthTokenManager,
    ):
        self.client_session = client_session
        self.settings = settings
        self.token_manager = token_manager

    def is_configured(self) -> bool:
        return self.token_manager.has_credentials()

    def _marketplace(self, region: Region) -> str:
        return MARKETPLACES.get(region, MARKETPLACES[Region.BR])

    async def search_items(
        self,
        keywords: str,
        region: Region = Region.BR,
        item_count: int = 10,
        item_page: Optional[int] = None,
    ) -> dict:
        payload: dict[str, Any] = {
            "keywords": keywords,
            "searchIndex": "Books",
            "partnerTag": self.settings.tag_for(region.value),
            "resources": RESOURCES,
            "itemCount": item_count,
        }
        if item_page is not None:
            payload["itemPage"] = item_page
        return await self._request("searchItems", payload, region)

    async def get_items(self, asins: list[str], region: Region = Region.BR) -> dict:
        payload = {
            "itemIds": asins[:MAX_ITEM_IDS],
            "partnerTag": self.settings.tag_for(region.value),
            "resources": RESOURCES,
        }
        return await self._request("getItems", payload, region)

    async def get_variations(self, asin: str, region: Region = Region.BR) -> dict:
        payload = {
            "asin": asin,
            "partnerTag": self.settings.tag_for(region.value),
            "resources": RESOURCES,
        }
        return await self._request("getVariations", payload, region)

    async def _request(
        self, operation: str, payload: dict, region: Region, retry_count: int = 0
    ) -> dict:
        url = f"{API_HOST}/catalog/v1/{operation}"
        marketplace = self._marketplace(region)
        access_token = await self.token_manager.get_access_token()
        headers = {
            "x-marketplace": marketplace,
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {access_token}, Version {self.settings.api_version}",
        }
        logger.info(
            "Amazon Creators API request",
            operation=operation,
            marketplace=marketplace,
        )

        try:
            async with self.client_session.post(
                url,
                json=payload,
                headers=headers,
                timeout=ClientTimeout(total=self.settings.timeout),
            ) as response:
                if response.status == 401 and retry_count < 1:
                    logger.warning("Amazon Creators API returned 401, refreshing token")
                    self.token_manager.invalidate_token()
                    retry = True
                else:
                    retry = False
                    if response.status == 429:
                        raise ProviderRateLimitedError(PROVIDER_NAME)
                    try:
                        data = await response.json(content_type=None)
                    except ValueError:
                        data = None
                    if not response.ok:
                        raise ProviderHttpError(
                            PROVIDER_NAME,
                            f"Amazon API error: {_error_message(data) or response.status}",
                            status=response.status,
                        )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(PROVIDER_NAME, f"{operation} timed out") from e
        except ClientError as e:
            raise ProviderHttpError(PROVIDER_NAME, f"{operation} failed: {e}") from e

        if retry:
            return await self._request(operation, payload, region, retry_count + 1)

        data = normalize_response_keys(data or {})
        if not isinstance(data, dict):
            raise MalformedProviderResponseError(
                PROVIDER_NAME, f"{operation} returned {type(data).__name__}, expected an object"
            )
        if data.get("Errors"):
            message = _error_message(data) or "Unknown API error"
            logger.error("Amazon Creators API returned errors", errors=data["Errors"])
            raise ProviderHttpError(PROVIDER_NAME, f"Amazon API error: {message}")
        return data


def _error_message(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    if data.get("message"):
        return data["message"]
    errors = data.get("Errors") or data.get("errors") or []
    if errors and isinstance(errors[0], dict):
        return errors[0].get("Message") or errors[0].get("message")
    return None
