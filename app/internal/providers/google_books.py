"""
Google Books Volumes API provider. Free, no key required, tried first.
"""
from typing import Any, Dict, List, Optional

from aiohttp import ClientSession
from pydantic import BaseModel, Field

from app.internal.env_settings import GoogleBooksSettings
from app.internal.models import ExternalRecord, ProviderResult
from app.internal.providers.base import BookSearchProvider, SearchOptions
from app.internal.providers.isbn import clean_isbn, is_isbn_shaped
from app.util.exceptions import ProviderHttpError, ProviderRateLimitedError
from app.util.log import logger

API_BASE_URL = "https://www.googleapis.com/books/v1/volumes"

_LEADING_ARTICLES = {
    "a", "an", "the", "o", "os", "as", "um", "uma", "de", "da", "do",
    "e", "and", "or", "of", "in", "on", "at", "to", "for",
}
_MEANINGFUL_SHORT_WORDS = {"ai", "io", "it", "is", "if", "or", "no", "so", "go", "do", "be"}


class GoogleBooksVolumeInfo(BaseModel):
    """Google Books API volume info response model."""
    title: str = ""
    subtitle: Optional[str] = None
    authors: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    publisher: Optional[str] = None
    categories: Optional[List[str]] = None
    imageLinks: Optional[Dict[str, str]] = None
    publishedDate: Optional[str] = None
    pageCount: Optional[int] = None
    language: Optional[str] = None
    maturityRating: Optional[str] = None
    previewLink: Optional[str] = None
    infoLink: Optional[str] = None
    industryIdentifiers: Optional[List[Dict[str, str]]] = None


class GoogleBooksItem(BaseModel):
    """Google Books API item response model."""
    id: str
    volumeInfo: GoogleBooksVolumeInfo = Field(default_factory=GoogleBooksVolumeInfo)


class GoogleBooksResponse(BaseModel):
    """Google Books API search response model."""
    items: List[Dict[str, Any]] = Field(default_factory=list)
    totalItems: int = 0


def remove_articles(query: str) -> str:
    """Drop a leading article and short filler words. Returns the input if nothing is left."""
    words = query.strip().split()
    if len(words) > 1 and words[0].lower() in _LEADING_ARTICLES:
        words = words[1:]
    words = [w for w in words if len(w) > 2 or w.lower() in _MEANINGFUL_SHORT_WORDS]
    return " ".join(words) or query.strip()


def build_search_query(query: str, options: SearchOptions) -> str:
    if is_isbn_shaped(query):
        return f"isbn:{clean_isbn(query)}"
    if options.title and options.author:
        return f"intitle:{options.title} inauthor:{options.author}"
    return f"intitle:{remove_articles(query)}"


def secure_thumbnail(image_links: Optional[Dict[str, str]]) -> Optional[str]:
    if not image_links or not image_links.get("thumbnail"):
        return None
    return image_links["thumbnail"].replace("http:", "https:").replace("&edge=curl", "")


def _identifier(volume_info: GoogleBooksVolumeInfo, kind: str) -> Optional[str]:
    for identifier in volume_info.industryIdentifiers or []:
        if identifier.get("type") == kind:
            return identifier.get("identifier")
    return None


class GoogleBooksProvider(BookSearchProvider):
    name = "Google Books"
    priority = 1

    def __init__(self, client_session: ClientSession, settings: GoogleBooksSettings):
        super().__init__(client_session)
        self.settings = settings

    def is_enabled(self) -> bool:
        return self.settings.enabled

    def _headers(self) -> dict[str, str]:
        headers = {"Accept-Language": self.settings.accept_language}
        if self.settings.location_ip:
            headers["X-Forwarded-For"] = self.settings.location_ip
        return headers

    def _params(self, **params) -> dict:
        if self.settings.api_key:
            params["key"] = self.settings.api_key
        return params

    def transform(self, item: GoogleBooksItem) -> Optional[ExternalRecord]:
        info = item.volumeInfo
        if not info.title:
            logger.debug("Dropping Google Books item without title", google_id=item.id)
            return None

        isbn_13 = _identifier(info, "ISBN_13")
        isbn_10 = _identifier(info, "ISBN_10")
        return ExternalRecord(
            provider=self.name,
            google_id=item.id,
            title=info.title,
            subtitle=info.subtitle,
            authors=", ".join(info.authors) if info.authors else None,
            isbn=isbn_13 or isbn_10,
            isbn_10=isbn_10,
            isbn_13=isbn_13,
            thumbnail=secure_thumbnail(info.imageLinks),
            description=info.description,
            publisher=info.publisher,
            published_date=info.publishedDate,
            page_count=info.pageCount,
            language=info.language,
            categories=info.categories,
            maturity_rating=info.maturityRating,
            preview_link=info.previewLink,
            info_link=info.infoLink,
        )

    async def _query_volumes(self, search_query: str, params: dict) -> list[ExternalRecord]:
        data = await self._get_json(
            API_BASE_URL,
            params=self._params(q=search_query, **params),
            timeout=self.settings.timeout,
            headers=self._headers(),
        )
        response = GoogleBooksResponse.model_validate(data)
        return self.transform_each(
            response.items, lambda raw: self.transform(GoogleBooksItem.model_validate(raw))
        )

    async def _search(self, query: str, options: SearchOptions) -> ProviderResult:
        search_query = build_search_query(query, options)
        params = {
            "maxResults": options.max_results,
            "printType": "books",
            "orderBy": "newest",
        }
        # Very short single words are noisy without the ebook filter
        if len(query.split()) == 1 and len(query) <= 3:
            params["filter"] = "ebooks"

        books = await self._query_volumes(search_query, params)
        logger.info(
            "Google Books search complete",
            query=query,
            search_query=search_query,
            results_found=len(books),
        )
        return self.result(books)

    async def _fetch_volume(self, google_id: str) -> Optional[ExternalRecord]:
        data = await self._get_json(
            f"{API_BASE_URL}/{google_id}",
            params=self._params(),
            timeout=self.settings.timeout,
            headers=self._headers(),
        )
        return self.transform(GoogleBooksItem.model_validate(data))

    async def _get_items(self, ids: list[str]) -> ProviderResult:
        books = []
        for google_id in ids:
            try:
                record = await self._fetch_volume(google_id)
            except ProviderRateLimitedError:
                raise
            except ProviderHttpError as e:
                logger.warning(
                    "Google Books volume lookup failed, skipping id",
                    google_id=google_id,
                    status=e.status,
                )
                continue
            if record:
                books.append(record)
        return self.result(books, "No volumes found for the given ids")

    async def _get_variations(self, external_id: str) -> ProviderResult:
        volume = await self._fetch_volume(external_id)
        if volume is None:
            return self.failure("Volume not found")

        search_query = f'intitle:"{volume.title}"'
        if volume.authors:
            first_author = volume.authors.split(", ")[0]
            search_query += f' inauthor:"{first_author}"'

        books = await self._query_volumes(
            search_query, {"maxResults": 20, "printType": "books"}
        )
        editions = [b for b in books if b.google_id != external_id]
        return self.result(editions, "No other editions found")
