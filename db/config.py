"""
Environment-driven database configuration.
"""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import quote_plus


def load_env_files() -> None:
    """
    Load KEY=VALUE pairs from `.env` and `.env.local` at the project root.
    Variables already present in the process environment win.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in (".env", ".env.local"):
        env_path = project_root / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            if line.startswith("export "):
                line = line[len("export ") :]

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite postgres URLs to the psycopg driver form SQLAlchemy expects.
    """

    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _compose_from_parts() -> str | None:
    host = os.getenv("POSTGRES_HOST")
    database = os.getenv("POSTGRES_DB")
    if not host or not database:
        return None

    user = quote_plus(os.getenv("POSTGRES_USER", "postgres"))
    password = os.getenv("POSTGRES_PASSWORD")
    port = os.getenv("POSTGRES_PORT", "5432")
    credentials = f"{user}:{quote_plus(password)}" if password else user
    return f"postgresql+psycopg://{credentials}@{host}:{port}/{database}"


def resolve_database_url() -> str:
    """
    Resolve the database URL.

    Priority:
    1) DATABASE_URL
    2) POSTGRES_HOST / POSTGRES_DB with optional user, password and port
    """

    load_env_files()

    direct_url = os.getenv("DATABASE_URL")
    if direct_url:
        return normalize_postgres_url(direct_url.strip())

    composed = _compose_from_parts()
    if composed:
        return composed

    raise RuntimeError(
        "No database URL configured. Set DATABASE_URL, or POSTGRES_HOST and POSTGRES_DB."
    )
