from pydantic import BaseModel

from app.shared.config import config


def _str(key: str, default: str = "") -> str:
    return (config.get(key) or default).strip()


def _opt(key: str) -> str | None:
    return (config.get(key) or "").strip() or None


def _float(key: str, default: float) -> float:
    return float((config.get(key) or "").strip() or default)


class AppEnvironConfig(BaseModel):
    # Public demo switch: when enabled, external integrations use stubs and avoid network calls.
    DEMO_MODE: bool = config.get_bool("DEMO_MODE", True)
    DEBUG: bool = config.get_bool("DEBUG", False)

    API_CORS_ORIGINS: list[str] = [o.strip() for o in _str("API_CORS_ORIGINS", "*").split(",")]
    API_HOST: str = _str("API_HOST", "0.0.0.0")
    API_PORT: int = int(_str("API_PORT", "8000"))
    API_WORKERS: int = int(_str("API_WORKERS", "1"))
    INTERNAL_API_KEY: str | None = _opt("INTERNAL_API_KEY")

    LOGFIRE_ENABLE: bool = config.get_bool("LOGFIRE_ENABLE", False)
    LOGFIRE_TOKEN: str | None = _opt("LOGFIRE_TOKEN")

    # MongoDB
    MONGO_URL: str = config.get_mongo_url()
    MONGO_DATABASE: str = _str("MONGO_DATABASE", "witness_live")

    # Per-stream serialization: "local" (single process) or "redis"
    STREAM_GUARD_BACKEND: str = _str("STREAM_GUARD_BACKEND", "local").lower()
    REDIS_URL: str = config.get_redis_url()
    STREAM_GUARD_TTL_SECONDS: int = int(_str("STREAM_GUARD_TTL_SECONDS", "900"))

    # Mux configuration
    MUX_TOKEN_ID: str | None = _opt("MUX_TOKEN_ID")
    MUX_TOKEN_SECRET: str | None = _opt("MUX_TOKEN_SECRET")
    MUX_RTMP_INGEST_BASE_URL: str = _str(
        "MUX_RTMP_INGEST_BASE_URL", "rtmps://global-live.mux.com:443/app"
    )

    # AWS S3 configuration
    AWS_ACCESS_KEY_ID: str | None = _opt("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY: str | None = _opt("AWS_SECRET_ACCESS_KEY")
    AWS_REGION: str = _str("AWS_REGION", "us-east-1")
    S3_ARCHIVE_BUCKET: str = _str("S3_ARCHIVE_BUCKET", "archived-streams")
    S3_ARCHIVE_PREFIX: str = _str("S3_ARCHIVE_PREFIX", "archives")
    S3_EVIDENCE_PREFIX: str = _str("S3_EVIDENCE_PREFIX", "evidence")
    # Optional CDN/base URL for public object links; defaults to the bucket's S3 URL.
    S3_PUBLIC_BASE_URL: str | None = _opt("S3_PUBLIC_BASE_URL")

    # Archival pipeline
    ARCHIVE_CONTENT_TYPE: str = _str("ARCHIVE_CONTENT_TYPE", "video/mp4")
    ARCHIVE_FETCH_TIMEOUT_SECONDS: float = _float("ARCHIVE_FETCH_TIMEOUT_SECONDS", 120.0)
    ARCHIVE_UPLOAD_TIMEOUT_SECONDS: float = _float("ARCHIVE_UPLOAD_TIMEOUT_SECONDS", 300.0)
    ARCHIVE_STALL_SECONDS: float = _float("ARCHIVE_STALL_SECONDS", 3600.0)


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
