"""
Open Library provider: Books API for ISBN/OLID lookups, Search API for text.
"""
from typing import Any, Optional

from aiohttp import ClientSession

from app.internal.env_settings import OpenLibrarySettings
from app.internal.models import ExternalRecord, ProviderResult
from app.internal.providers.base import BookSearchProvider, SearchOptions
from app.internal.providers.isbn import clean_isbn, is_isbn_shaped
from app.util.log import logger

BOOKS_API_URL = "https://openlibrary.org/api/books"
SEARCH_API_URL = "https://openlibrary.org/search.json"
SITE_URL = "https://openlibrary.org"
COVERS_URL = "https://covers.openlibrary.org/b"

MAX_SUBJECTS = 5
MAX_SEARCH_AUTHORS = 3


def cover_url(isbn: Optional[str]) -> Optional[str]:
    if not isbn:
        return None
    return f"{COVERS_URL}/isbn/{isbn}-M.jpg"


def _names(values: list[Any]) -> list[str]:
    """Books API lists hold either plain strings or {"name": ...} objects."""
    names = []
    for value in values:
        if isinstance(value, dict) and value.get("name"):
            names.append(value["name"])
        elif isinstance(value, str):
            names.append(value)
    return names


def _first_key(values: list[Any]) -> Optional[str]:
    for value in values:
        if isinstance(value, dict) and value.get("key"):
            return value["key"]
        if isinstance(value, str):
            return value
    return None


def _first_with_length(isbns: list[str], length: int) -> Optional[str]:
    for isbn in isbns:
        clean = clean_isbn(isbn)
        if len(clean) == length:
            return clean
    return None


def _olid(key: str) -> str:
    return key.strip().rstrip("/").split("/")[-1]


class OpenLibraryProvider(BookSearchProvider):
    name = "Open Library"
    priority = 2

    def __init__(self, client_session: ClientSession, settings: OpenLibrarySettings):
        super().__init__(client_session)
        self.settings = settings

    def is_enabled(self) -> bool:
        return self.settings.enabled

    def transform_book(self, data: dict, isbn: Optional[str] = None) -> Optional[ExternalRecord]:
        """Books API (jscmd=data) entry to record."""
        if not data.get("title"):
            return None
        identifiers = data.get("identifiers") or {}
        isbn_10 = (identifiers.get("isbn_10") or [None])[0]
        isbn_13 = (identifiers.get("isbn_13") or [None])[0]
        isbn = isbn or isbn_13 or isbn_10
        authors = _names(data.get("authors") or [])
        publishers = _names(data.get("publishers") or [])
        subjects = _names(data.get("subjects") or [])[:MAX_SUBJECTS]
        return ExternalRecord(
            provider=self.name,
            open_library_key=data.get("key"),
            title=data["title"],
            subtitle=data.get("subtitle"),
            authors=", ".join(authors) or None,
            isbn=isbn,
            isbn_10=isbn_10,
            isbn_13=isbn_13,
            thumbnail=cover_url(isbn),
            publisher=publishers[0] if publishers else None,
            published_date=data.get("publish_date"),
            page_count=data.get("number_of_pages"),
            language=_first_key(data.get("languages") or []),
            categories=subjects or None,
            preview_link=data.get("url"),
            info_link=data.get("url"),
        )

    def transform_doc(self, doc: dict) -> Optional[ExternalRecord]:
        """Search API document to record."""
        if not doc.get("title"):
            return None
        isbns = doc.get("isbn") or []
        isbn_13 = _first_with_length(isbns, 13)
        isbn_10 = _first_with_length(isbns, 10)
        isbn = isbn_13 or isbn_10
        key = doc.get("key")
        year = doc.get("first_publish_year")
        authors = (doc.get("author_name") or [])[:MAX_SEARCH_AUTHORS]
        publishers = doc.get("publisher") or []
        languages = doc.get("language") or []
        subjects = (doc.get("subject") or [])[:MAX_SUBJECTS]
        return ExternalRecord(
            provider=self.name,
            open_library_key=key,
            title=doc["title"],
            subtitle=doc.get("subtitle"),
            authors=", ".join(authors) or None,
            isbn=isbn,
            isbn_10=isbn_10,
            isbn_13=isbn_13,
            thumbnail=cover_url(isbn),
            publisher=publishers[0] if publishers else None,
            published_date=str(year) if year else None,
            language=languages[0] if languages else None,
            categories=subjects or None,
            preview_link=f"{SITE_URL}{key}" if key else None,
            info_link=f"{SITE_URL}{key}" if key else None,
        )

    def transform_edition(self, edition: dict) -> Optional[ExternalRecord]:
        """Editions endpoint entry to record."""
        if not edition.get("title"):
            return None
        isbn_13 = (edition.get("isbn_13") or [None])[0]
        isbn_10 = (edition.get("isbn_10") or [None])[0]
        isbn = isbn_13 or isbn_10
        key = edition.get("key")
        publishers = _names(edition.get("publishers") or [])
        return ExternalRecord(
            provider=self.name,
            open_library_key=key,
            title=edition["title"],
            subtitle=edition.get("subtitle"),
            isbn=isbn,
            isbn_10=isbn_10,
            isbn_13=isbn_13,
            thumbnail=cover_url(isbn),
            publisher=publishers[0] if publishers else None,
            published_date=edition.get("publish_date"),
            page_count=edition.get("number_of_pages"),
            language=_first_key(edition.get("languages") or []),
            info_link=f"{SITE_URL}{key}" if key else None,
        )

    async def _books_api(self, bibkeys: list[str]) -> dict:
        data = await self._get_json(
            BOOKS_API_URL,
            params={"bibkeys": ",".join(bibkeys), "format": "json", "jscmd": "data"},
            timeout=self.settings.isbn_timeout,
        )
        return data if isinstance(data, dict) else {}

    async def search_by_isbn(self, query: str) -> ProviderResult:
        isbn = clean_isbn(query)
        logger.info("Open Library ISBN lookup", query=query, isbn=isbn)
        data = await self._books_api([f"ISBN:{isbn}"])
        entry = data.get(f"ISBN:{isbn}")
        books = self.transform_each([entry] if entry else [], lambda e: self.transform_book(e, isbn))
        return self.result(books, "No books found in Open Library for ISBN")

    async def search_by_text(self, query: str, options: SearchOptions) -> ProviderResult:
        params: dict[str, Any] = {
            "q": query,
            "format": "json",
            "limit": options.max_results,
        }
        if options.title:
            params["title"] = options.title
        if options.author:
            params["author"] = options.author

        data = await self._get_json(
            SEARCH_API_URL, params=params, timeout=self.settings.search_timeout
        )
        docs = (data.get("docs") or []) if isinstance(data, dict) else []
        books = self.transform_each(docs, self.transform_doc)
        logger.info(
            "Open Library text search complete",
            query=query,
            num_found=data.get("numFound", 0) if isinstance(data, dict) else 0,
            results_found=len(books),
        )
        return self.result(books, "No books found in Open Library search")

    async def _search(self, query: str, options: SearchOptions) -> ProviderResult:
        if is_isbn_shaped(query):
            return await self.search_by_isbn(query)
        return await self.search_by_text(query, options)

    async def _get_items(self, ids: list[str]) -> ProviderResult:
        bibkeys = [f"OLID:{_olid(i)}" for i in ids]
        data = await self._books_api(bibkeys)
        books = []
        for bibkey in bibkeys:
            entry = data.get(bibkey)
            if entry:
                books.extend(self.transform_each([entry], self.transform_book))
        return self.result(books, "No Open Library records for the given ids")

    async def _work_key(self, external_id: str) -> Optional[str]:
        olid = _olid(external_id)
        if olid.endswith("W"):
            return olid
        edition = await self._get_json(
            f"{SITE_URL}/books/{olid}.json", timeout=self.settings.isbn_timeout
        )
        works = (edition.get("works") or []) if isinstance(edition, dict) else []
        key = _first_key(works)
        return _olid(key) if key else None

    async def _get_variations(self, external_id: str) -> ProviderResult:
        work = await self._work_key(external_id)
        if not work:
            return self.failure("No Open Library work found")
        data = await self._get_json(
            f"{SITE_URL}/works/{work}/editions.json",
            params={"limit": 20},
            timeout=self.settings.search_timeout,
        )
        entries = (data.get("entries") or []) if isinstance(data, dict) else []
        editions = [
            record
            for record in self.transform_each(entries, self.transform_edition)
            if _olid(record.open_library_key or "") != _olid(external_id)
        ]
        return self.result(editions, "No other editions found")
