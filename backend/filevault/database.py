"""Connection factories for the two metadata backends.

Nothing here connects at import time. The FastAPI lifespan in main.py builds
one engine and one Mongo client at startup and hands them to the stores:

    engine = build_engine(settings.DATABASE_URL)
    mongo = build_mongo_client(settings.MONGO_URL)
    collection = mongo[settings.MONGO_DB][settings.MONGO_COLLECTION]
"""
from pymongo import AsyncMongoClient
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create the async SQLAlchemy engine for the relational store."""
    kwargs = {"echo": echo, "pool_pre_ping": True}
    # SQLite (used in tests) does not take server pool sizing
    if make_url(url).get_backend_name() != "sqlite":
        kwargs.update(pool_size=10, max_overflow=20)
    return create_async_engine(url, **kwargs)


def build_mongo_client(url: str) -> AsyncMongoClient:
    """Create the async Mongo client for the document store.

    tz_aware keeps createdAt comparable with the relational timestamps.
    """
    return AsyncMongoClient(url, tz_aware=True)
