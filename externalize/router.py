"""
Router/storage capability consumed by the externalization migrator.

The migrator only talks to these abstract classes, so it runs the same way
against Azure Blob Storage or an in-memory fake.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict

from bson import json_util
from bson.json_util import CANONICAL_JSON_OPTIONS
from pymongo import ReturnDocument

COUNTERS_COLLECTION = '_xronox_counters'


def dumps_payload(payload: Dict[str, Any]) -> str:
    """Canonical Extended JSON text; BSON types survive a round trip."""
    return json_util.dumps(payload, json_options=CANONICAL_JSON_OPTIONS, separators=(',', ':'))


def loads_payload(data) -> Dict[str, Any]:
    if isinstance(data, bytes):
        data = data.decode('utf-8')
    return json_util.loads(data, json_options=CANONICAL_JSON_OPTIONS)


def json_key(collection: str, identifier: str, revision: int = 0) -> str:
    """Deterministic object key for one revision of one record."""
    return f"{collection}/{identifier}/v{revision}.json"


@dataclass
class RouteInfo:
    database: str
    collection: str
    mongo_uri: str = ''
    database_type: str = 'runtime'


class StorageAdapter(ABC):

    @abstractmethod
    def put_json(self, bucket: str, key: str, payload: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def get_json(self, bucket: str, key: str) -> Dict[str, Any]:
        """Return the stored payload; raise if it is missing or unreadable."""


@dataclass
class StorageHandle:
    adapter: StorageAdapter
    bucket: str


class StorageRouter(ABC):
    """Decides where heads and bodies of a collection go."""

    @abstractmethod
    def route(self, database: str, collection: str) -> RouteInfo:
        ...

    @abstractmethod
    def get_client(self, route_info: RouteInfo):
        """Connected client for the deployment holding the heads."""

    @abstractmethod
    def get_storage_handle(self, route_info: RouteInfo) -> StorageHandle:
        ...

    def derive_key(self, collection: str, identifier: str, revision: int = 0) -> str:
        return json_key(collection, identifier, revision)

    def increment_change_version(self, route_info: RouteInfo) -> int:
        """Atomically bump and return the collection's change-version counter."""
        database = self.get_client(route_info)[route_info.database]
        counter = database[COUNTERS_COLLECTION].find_one_and_update(
            {'_id': route_info.collection},
            {'$inc': {'cv': 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter['cv'])

    def shutdown(self) -> None:
        pass
