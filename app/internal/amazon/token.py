import asyncio

from aiohttp import ClientError, ClientSession, ClientTimeout

from app.internal.env_settings import AmazonSettings
from app.util.cache import CacheStore
from app.util.exceptions import ProviderDisabledError, ProviderHttpError, ProviderTimeoutError
from app.util.log import logger

PROVIDER_NAME = "Amazon Creators"
TOKEN_CACHE_KEY = "amazon_creators_access_token"
TOKEN_TTL_SECONDS = 3300
SCOPE = "creatorsapi/default"

# Cognito endpoint per credential version (NA, EU, FE)
TOKEN_ENDPOINTS = {
    "2.1": "https://creatorsapi.auth.us-east-1.amazoncognito.com/oauth2/token",
    "2.2": "https://creatorsapi.auth.eu-south-2.amazoncognito.com/oauth2/token",
    "2.3": "https://creatorsapi.auth.us-west-2.amazoncognito.com/oauth2/token",
}


class AmazonOAuthTokenManager:
    """OAuth2 client-credentials tokens for the Creators API, cached until shortly before expiry."""

    def __init__(
        self,
        client_session: ClientSession,
        settings: AmazonSettings,
        cache: CacheStore,
    ):
        self.client_session = client_session
        self.settings = settings
        self.cache = cache

    @property
    def token_endpoint(self) -> str:
        if self.settings.token_endpoint:
            return self.settings.token_endpoint
        return TOKEN_ENDPOINTS.get(self.settings.api_version, TOKEN_ENDPOINTS["2.1"])

    def has_credentials(self) -> bool:
        return bool(self.settings.credential_id and self.settings.credential_secret)

    async def get_access_token(self) -> str:
        cached = self.cache.get(TOKEN_CACHE_KEY)
        if cached:
            return cached
        return await self._request_new_token()

    def invalidate_token(self) -> None:
        self.cache.forget(TOKEN_CACHE_KEY)
        logger.info("Amazon OAuth token invalidated")

    async def _request_new_token(self) -> str:
        if not self.has_credentials():
            raise ProviderDisabledError(PROVIDER_NAME, "Creators API credentials not configured")

        logger.info(
            "Requesting Amazon OAuth token",
            endpoint=self.token_endpoint,
            version=self.settings.api_version,
        )
        form = {
            "grant_type": "client_credentials",
            "client_id": self.settings.credential_id,
            "client_secret": self.settings.credential_secret,
            "scope": SCOPE,
        }
        try:
            async with self.client_session.post(
                self.token_endpoint,
                data=form,
                timeout=ClientTimeout(total=self.settings.timeout),
            ) as response:
                data = await response.json(content_type=None)
                if not response.ok:
                    error = (data or {}).get("error_description") if isinstance(data, dict) else None
                    raise ProviderHttpError(
                        PROVIDER_NAME,
                        f"Failed to obtain OAuth token: {error or response.status}",
                        status=response.status,
                    )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(PROVIDER_NAME, "OAuth token request timed out") from e
        except (ClientError, ValueError) as e:
            raise ProviderHttpError(PROVIDER_NAME, f"Failed to obtain OAuth token: {e}") from e

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise ProviderHttpError(PROVIDER_NAME, "OAuth response missing access_token")

        expires_in = int(data.get("expires_in") or 3600)
        ttl = min(expires_in - 300, TOKEN_TTL_SECONDS)
        if ttl > 0:
            self.cache.put(TOKEN_CACHE_KEY, access_token, ttl)
        logger.info("Amazon OAuth token cached", expires_in=expires_in, cache_ttl=ttl)
        return access_token
