"""
Catalog store: identity resolution and duplicate-safe writes for canonical books.

Uniqueness of isbn / google_id / amazon_asin is enforced by the database and is
the only concurrency guard. A unique-constraint hit on create is resolved by
re-reading the row that won the race.
"""
from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from app.internal.models import (
    Book,
    ExternalRecord,
    InfoQuality,
    ReadingStatus,
    UserBook,
)
from app.internal.providers.isbn import clean_isbn, is_isbn_shaped, split_isbn
from app.util.author_matcher import is_probable_match, normalize_text
from app.util.exceptions import handle_database_error
from app.util.log import logger

LOCAL_PROVIDER = "Local"

# Fields shared by ExternalRecord and Book
RECORD_FIELDS = [
    "title",
    "subtitle",
    "authors",
    "isbn",
    "isbn_10",
    "isbn_13",
    "google_id",
    "amazon_asin",
    "open_library_key",
    "thumbnail",
    "description",
    "publisher",
    "published_date",
    "page_count",
    "language",
    "categories",
    "maturity_rating",
    "amazon_rating",
    "amazon_rating_count",
]
UNIQUE_FIELDS = ("isbn", "google_id", "amazon_asin")


def _isbn_values(isbn: str) -> list[str]:
    values = {isbn.strip()}
    if is_isbn_shaped(isbn):
        values.add(clean_isbn(isbn))
    return sorted(values)


def normalize_identifiers(data: dict[str, Any]) -> dict[str, Any]:
    """Store ISBNs without separators and derive the 10/13 forms when missing."""
    for field in ("isbn", "isbn_10", "isbn_13"):
        if data.get(field) and is_isbn_shaped(data[field]):
            data[field] = clean_isbn(data[field])
        elif data.get(field) == "":
            data[field] = None
    if data.get("isbn"):
        isbn_10, isbn_13 = split_isbn(data["isbn"])
        if isbn_10 and not data.get("isbn_10"):
            data["isbn_10"] = isbn_10
        if isbn_13 and not data.get("isbn_13"):
            data["isbn_13"] = isbn_13
    return data


def record_from_book(book: Book) -> ExternalRecord:
    data = {field: getattr(book, field) for field in RECORD_FIELDS}
    return ExternalRecord(provider=LOCAL_PROVIDER, catalog_id=book.id, **data)


class CatalogStore:
    def __init__(self, session: Session):
        self.session = session

    def get(self, book_id: str) -> Optional[Book]:
        return self.session.get(Book, book_id)

    def _first(self, *clauses) -> Optional[Book]:
        # Oldest row wins so repeated lookups always resolve the same way
        return self.session.exec(
            select(Book).where(*clauses).order_by(col(Book.created_at), col(Book.id))
        ).first()

    def find_by_isbn(self, isbn: str) -> Optional[Book]:
        if not isbn or not isbn.strip():
            return None
        values = _isbn_values(isbn)
        book = self._first(col(Book.isbn).in_(values))
        if book is None:
            book = self._first(
                or_(col(Book.isbn_13).in_(values), col(Book.isbn_10).in_(values))
            )
        return book

    def find_by_external_id(self, external_id: str) -> Optional[Book]:
        if not external_id or not external_id.strip():
            return None
        external_id = external_id.strip()
        return self._first(
            or_(
                Book.google_id == external_id,
                Book.amazon_asin == external_id,
                Book.open_library_key == external_id,
            )
        )

    def find_fuzzy(self, title: str, authors: Optional[str] = None) -> Optional[Book]:
        """Lowest-confidence match for bulk imports only."""
        words = [w for w in normalize_text(title, primary_only=True).split() if len(w) > 2]
        if not words:
            return None
        anchor = max(words, key=len)
        candidates = self.session.exec(
            select(Book)
            .where(func.lower(Book.title).contains(anchor))
            .order_by(col(Book.created_at), col(Book.id))
            .limit(50)
        ).all()
        for candidate in candidates:
            if is_probable_match(title, authors, candidate.title, candidate.authors):
                logger.info(
                    "Fuzzy catalog match",
                    title=title,
                    authors=authors,
                    book_id=candidate.id,
                )
                return candidate
        return None

    def find_existing(
        self,
        book_id: Optional[str] = None,
        isbn: Optional[str] = None,
        external_id: Optional[str] = None,
        *,
        google_id: Optional[str] = None,
        amazon_asin: Optional[str] = None,
        title: Optional[str] = None,
        authors: Optional[str] = None,
        allow_fuzzy: bool = False,
    ) -> Optional[Book]:
        """
        Resolve an identifier set to one canonical row, in strict order:
        explicit id, isbn, external id (google id / asin / Open Library key),
        then (bulk imports only) a fuzzy title/author match.
        """
        if book_id:
            book = self.get(book_id)
            if book:
                return book
        if isbn:
            book = self.find_by_isbn(isbn)
            if book:
                return book
        for identifier in (external_id, google_id, amazon_asin):
            if identifier:
                book = self.find_by_external_id(identifier)
                if book:
                    return book
        if allow_fuzzy and title:
            return self.find_fuzzy(title, authors)
        return None

    def find_exact(self, term: str) -> Optional[Book]:
        """Exact identifier match for a raw search term, no fuzzy fallback."""
        term = term.strip()
        if not term:
            return None
        if is_isbn_shaped(term):
            book = self.find_by_isbn(term)
            if book:
                return book
        return self.find_by_external_id(term)

    def identifier_taken(self, field: str, value: str, exclude_id: Optional[str] = None) -> bool:
        column = getattr(Book, field)
        query = select(Book.id).where(column == value)
        if exclude_id:
            query = query.where(Book.id != exclude_id)
        return self.session.exec(query).first() is not None

    def create(self, data: dict[str, Any]) -> tuple[Book, bool]:
        """
        Insert a canonical book. Returns (book, created). When one of the
        unique identifiers already exists the existing row is returned.
        """
        data = normalize_identifiers(dict(data))
        existing = self.find_existing(
            data.get("id"),
            data.get("isbn"),
            google_id=data.get("google_id"),
            amazon_asin=data.get("amazon_asin"),
        )
        if existing:
            return existing, False

        book = Book(**data)
        self.session.add(book)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            existing = self.find_existing(
                None,
                data.get("isbn"),
                google_id=data.get("google_id"),
                amazon_asin=data.get("amazon_asin"),
            )
            if existing is None:
                handle_database_error(e, "create book", title=data.get("title"))
                raise
            logger.info(
                "Duplicate identifier on create, using existing book",
                book_id=existing.id,
                isbn=data.get("isbn"),
                google_id=data.get("google_id"),
                amazon_asin=data.get("amazon_asin"),
            )
            return existing, False

        self.session.refresh(book)
        logger.info("Created catalog book", book_id=book.id, title=book.title)
        return book, True

    def create_from_record(self, record: ExternalRecord, **overrides: Any) -> tuple[Book, bool]:
        data = {field: getattr(record, field) for field in RECORD_FIELDS}
        data.update(overrides)
        return self.create(data)

    def save(self, book: Book) -> Book:
        """Persist changes to an existing row. Integrity errors propagate after rollback."""
        self.session.add(book)
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            handle_database_error(e, "update book", rollback_session=self.session, book_id=book.id)
            raise
        self.session.refresh(book)
        return book

    def update(self, book: Book, changes: dict[str, Any]) -> Book:
        changes = normalize_identifiers(dict(changes))
        for field, value in changes.items():
            if field in RECORD_FIELDS or field in ("info_quality", "enriched_at"):
                setattr(book, field, value)
        return self.save(book)

    def search_local(
        self,
        title: Optional[str],
        authors: Optional[str] = None,
        exclude_id: Optional[str] = None,
        limit: int = 10,
    ) -> list[Book]:
        if not title:
            return []
        query = select(Book).where(col(Book.title).ilike(f"%{title}%"))
        if authors:
            first_author = authors.split(",")[0].strip()
            query = query.where(col(Book.authors).ilike(f"%{first_author}%"))
        if exclude_id:
            query = query.where(Book.id != exclude_id)
        return list(self.session.exec(query.order_by(col(Book.created_at)).limit(limit)).all())

    def annotate(self, records: Iterable[ExternalRecord]) -> None:
        """Set catalog_id on records that already have a canonical row."""
        for record in records:
            book = self.find_existing(
                None,
                record.isbn,
                google_id=record.google_id,
                amazon_asin=record.amazon_asin,
            )
            if book:
                record.catalog_id = book.id

    def pending_enrichment(self, limit: int) -> list[Book]:
        return list(
            self.session.exec(
                select(Book)
                .where(
                    Book.info_quality == InfoQuality.basic,
                    col(Book.enriched_at).is_(None),
                )
                .order_by(col(Book.created_at), col(Book.id))
                .limit(limit)
            ).all()
        )

    def get_library_entry(self, user_id: str, book_id: str) -> Optional[UserBook]:
        return self.session.exec(
            select(UserBook).where(UserBook.user_id == user_id, UserBook.book_id == book_id)
        ).first()

    def attach_to_library(
        self,
        user_id: str,
        book_id: str,
        is_private: bool = False,
        reading_status: ReadingStatus = ReadingStatus.want_to_read,
    ) -> tuple[UserBook, bool]:
        """Attach a book to a user's library. Returns (entry, created); attaching twice is a no-op."""
        existing = self.get_library_entry(user_id, book_id)
        if existing:
            return existing, False

        entry = UserBook(
            user_id=user_id,
            book_id=book_id,
            is_private=is_private,
            reading_status=reading_status,
            added_at=datetime.now(),
            read_at=date.today() if reading_status == ReadingStatus.read else None,
        )
        self.session.add(entry)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            existing = self.get_library_entry(user_id, book_id)
            if existing is None:
                raise
            return existing, False
        self.session.refresh(entry)
        logger.info("Book added to library", user_id=user_id, book_id=book_id)
        return entry, True
