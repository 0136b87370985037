from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme == "postgres":
        scheme = "postgresql"

    if scheme == "postgresql":
        scheme = "postgresql+psycopg"

    if scheme not in {"postgresql+psycopg", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("target_session_attrs", "read-write")
    new_query = urlencode(query_params, doseq=True)

    return urlunparse(parsed._replace(scheme=scheme, query=new_query))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: str = Field(
        default="sqlite:///./data/parlay_oracle.db",
        description="SQLAlchemy compatible database URL",
    )
    production_database_url: str | None = Field(
        default=None,
        description="Postgres connection string used when ENVIRONMENT=production",
    )
    oracle_secret_key: str | None = Field(
        default=None,
        description="Hex encoded secp256k1 secret used for announcements and attestations",
    )
    oracle_name: str = Field(
        default="Ernest Parlay Oracle",
        description="Human readable oracle name returned by the info endpoint",
    )
    digit_base: int = Field(
        default=2,
        description="Radix used to decompose numeric outcomes into signed digits",
        ge=2,
    )
    single_event_nb_digits: int = Field(
        default=20,
        description="Number of committed nonces for single data-feed events",
        ge=1,
    )
    default_max_normalized_value: int = Field(
        default=1000,
        description="Quantization scale applied when a parlay contract omits one",
        ge=1,
    )
    mempool_base_url: AnyUrl = Field(
        default="https://mempool.space/api/v1",
        description="Base URL for the mempool.space mining API",
    )
    feed_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout applied to data-feed requests",
        gt=0,
    )
    feed_retry_backoff_seconds: list[float] | tuple[float, ...] | str = Field(
        default_factory=lambda: [1.0, 2.0, 4.0],
        description="Comma-separated list or array of backoff delays (seconds) between feed retries",
    )
    attestation_batch_limit: int = Field(
        default=50,
        description="Maximum number of matured events attested per sweep",
        ge=1,
    )

    @field_validator("database_url", "production_database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value

        if value.startswith("postgresql+psycopg://") or value.startswith(
            "postgresql+asyncpg://"
        ):
            return value

        normalized = value
        if normalized.startswith("postgres://"):
            normalized = "postgresql://" + normalized[len("postgres://") :]

        return normalized

    @field_validator("oracle_secret_key", mode="after")
    @classmethod
    def _validate_secret_key(cls, value: str | None) -> str | None:
        if value is None:
            return None
        candidate = value.strip().lower()
        if candidate.startswith("0x"):
            candidate = candidate[2:]
        if not candidate:
            return None
        if len(candidate) != 64:
            raise ValueError("ORACLE_SECRET_KEY must be 32 bytes of hex (64 characters)")
        try:
            bytes.fromhex(candidate)
        except ValueError as exc:
            raise ValueError("ORACLE_SECRET_KEY must be hex encoded") from exc
        return candidate

    @field_validator("feed_retry_backoff_seconds", mode="before")
    @classmethod
    def _parse_retry_backoff(cls, value: Any) -> list[float]:
        if value in (None, "", []):
            return [1.0, 2.0, 4.0]
        if isinstance(value, str):
            tokens = [token.strip() for token in value.split(",") if token.strip()]
            if not tokens:
                raise ValueError("FEED_RETRY_BACKOFF_SECONDS must contain at least one value")
            value = tokens
        if isinstance(value, (list, tuple)):
            backoff: list[float] = []
            for item in value:
                try:
                    delay = float(item)
                except (TypeError, ValueError) as exc:
                    raise ValueError("FEED_RETRY_BACKOFF_SECONDS entries must be numeric") from exc
                if delay < 0:
                    raise ValueError("FEED_RETRY_BACKOFF_SECONDS entries must not be negative")
                backoff.append(delay)
            if not backoff:
                raise ValueError("FEED_RETRY_BACKOFF_SECONDS must contain at least one value")
            return backoff
        raise ValueError(
            "FEED_RETRY_BACKOFF_SECONDS must be provided as a comma-separated string or list of numbers"
        )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def resolved_database_url(self) -> str:
        if self.is_production:
            if not self.production_database_url:
                raise ValueError(
                    "PRODUCTION_DATABASE_URL must be set when ENVIRONMENT=production"
                )
            return _ensure_sqlalchemy_postgres_scheme(str(self.production_database_url))
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    @property
    def feed_retry_schedule(self) -> tuple[float, ...]:
        return tuple(float(value) for value in self.feed_retry_backoff_seconds)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
