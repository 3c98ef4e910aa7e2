import logging
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / ".env")

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "assessment_db"

_client: Optional[AsyncIOMotorClient] = None


def encode_mongo_url(mongo_url: str) -> str:
    """URL-encode the password part of a connection string when it needs it."""
    if "@" not in mongo_url or "://" not in mongo_url:
        return mongo_url
    protocol_end = mongo_url.find("://") + 3
    at_pos = mongo_url.rfind("@")
    if at_pos <= protocol_end:
        return mongo_url
    user_pass = mongo_url[protocol_end:at_pos]
    if ":" not in user_pass:
        return mongo_url
    username, password = user_pass.split(":", 1)
    if any(c in password for c in ["@", "#", "$", "%", "&", "+", "="]):
        password = quote_plus(password)
    return mongo_url[:protocol_end] + f"{username}:{password}" + mongo_url[at_pos:]


def get_mongo_url() -> str:
    mongo_url = os.environ.get("MONGO_URL")
    if not mongo_url:
        raise ValueError("MONGO_URL environment variable is not set. Please check your .env file.")
    return encode_mongo_url(mongo_url.strip())


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        try:
            _client = AsyncIOMotorClient(get_mongo_url(), serverSelectionTimeoutMS=5000)
        except Exception as e:
            logger.error(f"Failed to create MongoDB client: {e}")
            raise
    return _client


def get_db() -> AsyncIOMotorDatabase:
    return get_client()[os.environ.get("DB_NAME", DEFAULT_DB_NAME)]


def close_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await db.students.create_index([("tenant_id", 1), ("external_id", 1)])
    await db.students.create_index([("tenant_id", 1), ("name", 1)])
    await db.tests.create_index([("tenant_id", 1), ("name", 1), ("date", 1)])
    await db.results.create_index([("tenant_id", 1), ("student_id", 1), ("test_id", 1)])
    await db.results.create_index([("tenant_id", 1), ("test_date", 1)])
