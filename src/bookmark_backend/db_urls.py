from __future__ import annotations


def _normalize_postgres(url: str) -> str | None:
    # 兼容 postgres:// 写法与默认 driver（psycopg2），统一落到 psycopg3
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://") :]
    if url.startswith("postgresql+psycopg2://"):
        return url.replace("postgresql+psycopg2://", "postgresql+psycopg://", 1)
    return None


def normalize_database_url_for_async(database_url: str) -> str:
    """
    把 DATABASE_URL 规范化为运行时使用的异步 driver。

    - SQLite：sqlite+aiosqlite://...
    - PostgreSQL：postgresql+psycopg://...（psycopg3 自带 async 支持）
    """
    url = (database_url or "").strip()
    if not url:
        return url

    if url.startswith("sqlite://") and "+aiosqlite" not in url:
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    pg = _normalize_postgres(url)
    if pg is not None:
        return pg

    return url


def normalize_database_url_for_alembic(database_url: str) -> str:
    """
    Alembic 通过同步 engine（engine_from_config）连接数据库，需去掉异步 driver：

    - sqlite+aiosqlite:// -> sqlite://
    - postgresql:// -> postgresql+psycopg://（psycopg3 同样支持同步模式）
    """
    url = (database_url or "").strip()
    if not url:
        return url

    if url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite+aiosqlite://", "sqlite://", 1)

    pg = _normalize_postgres(url)
    if pg is not None:
        return pg

    return url
