"""
Placeholder for the retired Product Advertising API 5.0 integration.

Kept so configurations that still select ``provider = "pa-api"`` resolve to a
provider that reports itself as disabled instead of failing at startup.
"""
from aiohttp import ClientSession

from app.internal.env_settings import AmazonSettings
from app.internal.models import ProviderResult
from app.internal.providers.base import BookSearchProvider, SearchOptions

DISABLED_MESSAGE = "Amazon PA-API is no longer available, use the Creators API"


class AmazonPaApiProvider(BookSearchProvider):
    name = "Amazon Books"
    priority = 3

    def __init__(self, client_session: ClientSession, settings: AmazonSettings):
        super().__init__(client_session)
        self.settings = settings

    def is_enabled(self) -> bool:
        return False

    async def _search(self, query: str, options: SearchOptions) -> ProviderResult:
        return self.failure(DISABLED_MESSAGE)

    async def _get_items(self, ids: list[str]) -> ProviderResult:
        return self.failure(DISABLED_MESSAGE)

    async def _get_variations(self, external_id: str) -> ProviderResult:
        return self.failure(DISABLED_MESSAGE)
