"""
Database and environment configuration for the price scraper.

`.env` and `.env.local` at the project root are read once per call to
``load_env_files``; values already present in the process environment win.
"""

from __future__ import annotations

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_FILES: tuple[str, ...] = (".env", ".env.local")

# Deployment environments that should use CLOUD_DATABASE_URL.
_REMOTE_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})
_PSYCOPG_SCHEME = "postgresql+psycopg://"


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    if not key:
        return None
    return key, value.strip().strip('"').strip("'")


def load_env_files(root: Path = PROJECT_ROOT) -> None:
    """
    Merge KEY=VALUE pairs from the project env files into ``os.environ``.
    """

    for filename in ENV_FILES:
        env_path = root / filename
        if not env_path.is_file():
            continue
        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            parsed = _parse_env_line(raw_line)
            if parsed is not None:
                os.environ.setdefault(*parsed)


def normalize_postgres_url(url: str) -> str:
    """
    Point ``postgres://`` and bare ``postgresql://`` URLs at the psycopg 3 driver.
    """

    for legacy_scheme in ("postgres://", "postgresql://"):
        if url.startswith(legacy_scheme):
            return _PSYCOPG_SCHEME + url[len(legacy_scheme):]
    return url


def resolve_database_url() -> str:
    """
    First configured of DATABASE_URL, CLOUD_DATABASE_URL (remote
    ``ENVIRONMENT`` only) and LOCAL_DATABASE_URL.
    """

    load_env_files()

    environment = os.getenv("ENVIRONMENT", "local").strip().lower()
    candidates = ["DATABASE_URL"]
    if environment in _REMOTE_ENVIRONMENTS:
        candidates.append("CLOUD_DATABASE_URL")
    candidates.append("LOCAL_DATABASE_URL")

    for name in candidates:
        value = (os.getenv(name) or "").strip()
        if value:
            return normalize_postgres_url(value)

    raise RuntimeError(
        "No database URL configured for the price scraper. Set DATABASE_URL, "
        "or LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
    )


def mask_database_url(url: str) -> str:
    """
    Hide the password in a database URL so it can be logged.
    """

    scheme, separator, rest = url.partition("://")
    if not separator or "@" not in rest:
        return url
    credentials, _, host = rest.rpartition("@")
    user = credentials.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"
