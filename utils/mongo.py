import logging
from typing import List, Tuple

from pymongo import MongoClient

logger = logging.getLogger(__name__)

SYSTEM_DATABASES = ('admin', 'config', 'local')


def connect_to_mongo(uri: str, cfg) -> MongoClient:
    """Open a client with long timeouts and verify it with a ping."""
    client = MongoClient(
        uri,
        connectTimeoutMS=cfg.MONGO_CONNECT_TIMEOUT_MS,
        socketTimeoutMS=cfg.MONGO_SOCKET_TIMEOUT_MS,
        serverSelectionTimeoutMS=cfg.MONGO_SERVER_SELECTION_TIMEOUT_MS,
        retryReads=True,
        retryWrites=True,
    )
    try:
        client.admin.command('ping')
    except Exception:
        client.close()
        raise
    return client


def list_database_names(client, excluded: Tuple[str, ...] = SYSTEM_DATABASES) -> Tuple[List[str], List[str]]:
    """
    Return (all database names, database names without the excluded ones).
    """
    full = [name for name in client.list_database_names() if isinstance(name, str)]
    filtered = [name for name in full if name not in excluded]
    return full, filtered


def list_collection_names(client, db_name: str) -> List[str]:
    names = client[db_name].list_collection_names()
    return [name for name in names if isinstance(name, str)]


def close_quietly(client, label: str) -> None:
    """Close a client, logging instead of raising on failure."""
    if client is None:
        return
    try:
        client.close()
    except Exception as e:
        logger.warning(f"⚠️  Failed to close {label} connection: {e}")
