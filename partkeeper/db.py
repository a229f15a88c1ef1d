from urllib.parse import urlparse

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine


# -----------------------
# DATABASE URL
# -----------------------
def normalize_database_url(url: str, sslmode: str = None) -> str:
    """Validate a Postgres URL and append ``sslmode`` when it is not already set."""
    url = (url or "").strip()
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set. Please set a valid Postgres URL."
        )

    parsed = urlparse(url)
    if not parsed.scheme.startswith("postgresql"):
        raise RuntimeError(
            f"Unsupported DATABASE_URL scheme '{parsed.scheme}'. Only Postgres is supported."
        )

    if sslmode and "sslmode=" not in url:
        sep = "&" if "?" in url else "?"
        url = f"{url}{sep}sslmode={sslmode}"
    return url


# -----------------------
# SQLAlchemy Engine
# -----------------------
def make_engine(
    url: str,
    statement_timeout_ms: int = 30000,
    lock_timeout_ms: int = 5000,
    connect_timeout_seconds: int = 10,
    sslmode: str = None,
) -> Engine:
    """
    Engine for one maintainer instance.

    Every session runs in UTC with server-side statement and lock timeouts,
    so no call against the target can hang a cycle.
    """
    options = (
        f"-c statement_timeout={int(statement_timeout_ms)} "
        f"-c lock_timeout={int(lock_timeout_ms)} "
        f"-c timezone=UTC"
    )
    return create_engine(
        normalize_database_url(url, sslmode),
        future=True,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=2,
        max_overflow=0,
        connect_args={
            "options": options,
            "connect_timeout": int(connect_timeout_seconds),
            "application_name": "partkeeper",
        },
    )
