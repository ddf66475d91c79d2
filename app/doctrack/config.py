import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    env: str
    database_url: str

    qr_payload_version: str
    log_level: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def load_settings() -> Settings:
    return Settings(
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///doctrack.db"),
        qr_payload_version=_getenv("QR_PAYLOAD_VERSION", "1.0"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "QR_PAYLOAD_VERSION": s.qr_payload_version,
        "LOG_LEVEL": s.log_level,
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
