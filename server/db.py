"""Document database connection.

One attempt, no retry: `connect_database()` either returns a client that
answered a `ping` or raises `DatabaseConnectionError`.
"""

from typing import Optional

from fastapi import HTTPException, Request
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from .core.errors import DatabaseConnectionError


async def connect_database(mongo_url: Optional[str]) -> AsyncMongoClient:
    if not mongo_url:
        raise DatabaseConnectionError("ConfigurationError: MONGO_URL is not set")

    client = None
    try:
        client = AsyncMongoClient(mongo_url)
        await client.admin.command("ping")
    except (PyMongoError, ValueError, TypeError) as e:
        if client is not None:
            await client.close()
        raise DatabaseConnectionError(f"{type(e).__name__}: {e}") from e
    return client


def get_database(request: Request) -> AsyncMongoClient:
    """Dependency: the client connected at startup."""
    client = getattr(request.app.state, "db", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Database not connected")
    return client
