import pathlib
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DBSettings(BaseModel):
    sqlite_path: str = "db.sqlite"
    """Relative path to the sqlite database given the config directory. If absolute, it ignores the config dir location."""
    use_postgres: bool = False
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "bookmerge"
    postgres_user: str = "bookmerge"
    postgres_password: str = "password"
    postgres_ssl_mode: str = "prefer"

    # Connection Pool Configuration
    pool_size: int = 10
    """SQLAlchemy connection pool size (number of connections to maintain in pool)"""
    max_overflow: int = 20
    """Maximum number of overflow connections beyond pool_size"""
    pool_timeout: int = 30
    """Timeout (seconds) to wait for a connection from the pool"""
    pool_pre_ping: bool = True
    """Enable ping to detect stale connections before using them"""


class ApplicationSettings(BaseModel):
    debug: bool = False
    config_dir: str = "/config"
    version: str = "local"
    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)"""
    log_format: str = "text"
    """Log format: 'text' for human-readable, 'json' for machine-readable"""
    log_file: str | None = None
    """Optional log file path (relative to config_dir/logs/). If not set, logs to stdout only"""

    default_region: str = "US"
    """Marketplace region used when a locale cannot be mapped"""

    search_cache_ttl: int = 604800
    """TTL for successful multi-source search results (default: 7 days)"""

    rate_limit_ttl: int = 3600
    """How long a rate-limited provider is skipped for the same query (default: 1 hour)"""

    enrichment_batch_size: int = 10
    """Maximum books picked by a batch enrichment run when no ids are given"""

    enrichment_batch_delay: float = 0.2
    """Seconds to wait between items of a batch enrichment run"""


class GoogleBooksSettings(BaseModel):
    enabled: bool = True
    api_key: str = ""
    """Optional Google Books API key (works without key but has rate limits)"""
    timeout: float = 10.0
    location_ip: str = ""
    """Optional X-Forwarded-For hint to get consistent results across server locations"""
    accept_language: str = "pt-BR,pt;q=0.9,en;q=0.8"


class OpenLibrarySettings(BaseModel):
    enabled: bool = True
    isbn_timeout: float = 10.0
    search_timeout: float = 15.0


class AmazonSettings(BaseModel):
    provider: Literal["creators", "pa-api"] = "creators"
    """Which Amazon search provider takes part in the fallback chain"""

    associate_tag: str = ""
    """Default affiliate tag. Purchase links are disabled when empty"""
    region_tags: dict[str, str] = Field(default_factory=dict)
    """Per-region affiliate tag overrides, e.g. {"US": "mytag-20"}"""

    sitestripe_enabled: bool = False

    creators_enabled: bool = False
    credential_id: str = ""
    credential_secret: str = ""
    api_version: str = "2.1"
    token_endpoint: str = ""
    """Overrides the version-based OAuth token endpoint"""

    timeout: float = 15.0
    max_pages: int = 2
    page_delay: float = 0.5
    """Seconds to wait between result pages"""

    def tag_for(self, region: str) -> str:
        return self.region_tags.get(region) or self.associate_tag


class Settings(BaseSettings):
    model_config = SettingsConfigDict(  # pyright: ignore[reportUnannotatedClassAttribute]
        env_prefix="BOOKMERGE_",
        env_nested_delimiter="__",
        nested_model_default_partial_update=True,
        env_file=(".env.local", ".env"),
        extra="ignore",
    )

    db: DBSettings = DBSettings()
    app: ApplicationSettings = ApplicationSettings()
    google_books: GoogleBooksSettings = GoogleBooksSettings()
    open_library: OpenLibrarySettings = OpenLibrarySettings()
    amazon: AmazonSettings = AmazonSettings()

    def get_sqlite_path(self):
        if self.db.sqlite_path.startswith("/"):
            return self.db.sqlite_path
        return str(pathlib.Path(self.app.config_dir) / self.db.sqlite_path)
