"""
In-memory stand-ins for the pymongo client surface and the storage router.

Only what the engine calls is implemented. Faults are injected per method
with ``fail_next`` and are real ``pymongo.errors`` exceptions.
"""

import copy
from collections import defaultdict, deque
from datetime import datetime

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from bson import ObjectId
from pymongo.errors import BulkWriteError, CollectionInvalid, DuplicateKeyError

from externalize.router import (RouteInfo, StorageAdapter, StorageHandle, StorageRouter,
                                dumps_payload, loads_payload)


_TYPE_ORDER = ((bool, 6), ((int, float), 1), (str, 2), (dict, 3), (bytes, 4), (ObjectId, 5), (datetime, 7))


def _type_order(value):
    if value is None:
        return 0
    for types, order in _TYPE_ORDER:
        if isinstance(value, types):
            return order
    return None


def _sort_key(value):
    return (_type_order(value), value)


def _compare(value, operator, bound):
    # Range operators only match values of the same type, like the server
    order = _type_order(bound)
    if value is None or order is None or _type_order(value) != order:
        return False
    if isinstance(bound, dict):
        return operator == '$gte' and not bound
    return value > bound if operator == '$gt' else value >= bound


def _matches(doc, query):
    for key, condition in (query or {}).items():
        value = doc.get(key)
        if isinstance(condition, dict) and condition and set(condition) <= {'$gt', '$gte'}:
            if not all(_compare(value, operator, bound) for operator, bound in condition.items()):
                return False
        elif value != condition:
            return False
    return True


class FakeCursor:

    def __init__(self, docs):
        self._docs = docs
        self._limit = 0

    def sort(self, key, direction=1):
        self._docs = sorted(self._docs, key=lambda doc: _sort_key(doc[key]), reverse=direction < 0)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def __iter__(self):
        docs = self._docs[:self._limit] if self._limit else self._docs
        return iter(copy.deepcopy(docs))


class FaultsMixin:

    def _init_faults(self):
        self._faults = defaultdict(deque)
        self.calls = defaultdict(int)

    def fail_next(self, method, error, times=1):
        for _ in range(times):
            self._faults[method].append(error)

    def _maybe_fail(self, method):
        self.calls[method] += 1
        if self._faults[method]:
            raise self._faults[method].popleft()


class FakeCollection(FaultsMixin):

    def __init__(self, database, name):
        self.database = database
        self.name = name
        self.docs = []
        self.indexes = [{'v': 2, 'key': {'_id': 1}, 'name': '_id_'}]
        self.options = {}
        self.exists = False
        self._init_faults()

    @property
    def full_name(self):
        return f"{self.database.name}.{self.name}"

    def _touch(self):
        self.exists = True

    def _find_index(self, doc_id):
        for position, doc in enumerate(self.docs):
            if doc.get('_id') == doc_id:
                return position
        return None

    # reads
    def find(self, filter=None, projection=None):
        self._maybe_fail('find')
        return FakeCursor([doc for doc in self.docs if _matches(doc, filter)])

    def find_one(self, filter=None):
        for doc in self.docs:
            if _matches(doc, filter):
                return copy.deepcopy(doc)
        return None

    def count_documents(self, filter):
        return sum(1 for doc in self.docs if _matches(doc, filter))

    def estimated_document_count(self):
        self._maybe_fail('estimated_document_count')
        return len(self.docs)

    def aggregate(self, pipeline):
        if pipeline == [{'$count': 'count'}]:
            return iter([{'count': len(self.docs)}] if self.docs else [])
        raise NotImplementedError(pipeline)

    # writes
    def insert_many(self, documents, ordered=True, bypass_document_validation=False):
        self._maybe_fail('insert_many')
        self._touch()
        write_errors = []
        inserted = 0
        for position, doc in enumerate(documents):
            doc.setdefault('_id', ObjectId())
            if self._find_index(doc['_id']) is not None:
                write_errors.append({'index': position, 'code': 11000, 'errmsg': 'E11000 duplicate key error'})
                if ordered:
                    break
                continue
            self.docs.append(copy.deepcopy(doc))
            inserted += 1
        if write_errors:
            raise BulkWriteError({'writeErrors': write_errors, 'writeConcernErrors': [], 'nInserted': inserted})

    def insert_one(self, document, bypass_document_validation=False):
        self._maybe_fail('insert_one')
        self._touch()
        document.setdefault('_id', ObjectId())
        if self._find_index(document['_id']) is not None:
            raise DuplicateKeyError('E11000 duplicate key error', 11000)
        self.docs.append(copy.deepcopy(document))

    def replace_one(self, filter, replacement, upsert=False):
        self._maybe_fail('replace_one')
        self._touch()
        for position, doc in enumerate(self.docs):
            if _matches(doc, filter):
                new_doc = copy.deepcopy(replacement)
                new_doc['_id'] = doc['_id']
                self.docs[position] = new_doc
                return
        if upsert:
            new_doc = copy.deepcopy(replacement)
            new_doc.setdefault('_id', filter.get('_id'))
            self.docs.append(new_doc)

    def delete_one(self, filter):
        for position, doc in enumerate(self.docs):
            if _matches(doc, filter):
                del self.docs[position]
                return

    def find_one_and_update(self, filter, update, upsert=False, return_document=False):
        self._touch()
        doc = next((doc for doc in self.docs if _matches(doc, filter)), None)
        if doc is None:
            if not upsert:
                return None
            doc = dict(filter)
            self.docs.append(doc)
        for key, amount in update.get('$inc', {}).items():
            doc[key] = doc.get(key, 0) + amount
        return copy.deepcopy(doc)

    # indexes
    def list_indexes(self):
        return iter(copy.deepcopy(self.indexes))

    def create_index(self, keys, **options):
        self._maybe_fail('create_index')
        if isinstance(keys, str):
            keys = [(keys, 1)]
        name = options.pop('name', None) or '_'.join(f"{field}_{direction}" for field, direction in keys)
        self._touch()
        self.indexes = [index for index in self.indexes if index['name'] != name]
        self.indexes.append(dict({'v': 2, 'key': dict(keys), 'name': name}, **options))
        return name

    def drop(self):
        self.database.drop_collection(self.name)


class FakeDatabase(FaultsMixin):

    def __init__(self, client, name):
        self.client = client
        self.name = name
        self.collections = {}
        self._init_faults()

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(self, name)
        return self.collections[name]

    def _existing(self):
        return [collection for collection in self.collections.values() if collection.exists]

    def list_collection_names(self):
        return [collection.name for collection in self._existing()]

    def list_collections(self):
        return iter([
            {'name': collection.name, 'type': 'collection', 'options': dict(collection.options)}
            for collection in self._existing()
        ])

    def create_collection(self, name, **options):
        self._maybe_fail('create_collection')
        collection = self[name]
        if collection.exists:
            raise CollectionInvalid(f"collection {name} already exists")
        collection.exists = True
        collection.options = dict(options)
        return collection

    def drop_collection(self, name):
        self.collections.pop(name, None)

    def command(self, command, *args, **kwargs):
        self._maybe_fail('command')
        if command == 'ping':
            return {'ok': 1.0}
        raise NotImplementedError(command)


class FakeClient:

    def __init__(self):
        self.databases = {}
        self.closed = False
        self.dropped = []

    def __getitem__(self, name):
        if name not in self.databases:
            self.databases[name] = FakeDatabase(self, name)
        return self.databases[name]

    def list_database_names(self):
        return [name for name, db in self.databases.items() if db.list_collection_names()]

    def drop_database(self, name):
        self.dropped.append(name)
        # Handles obtained before the drop stay usable, like pymongo's
        if name in self.databases:
            self.databases[name].collections.clear()

    def close(self):
        self.closed = True

    # helpers for tests
    def seed(self, db_name, collection_name, documents, indexes=()):
        collection = self[db_name][collection_name]
        collection.exists = True
        collection.docs.extend(copy.deepcopy(list(documents)))
        for keys, options in indexes:
            collection.create_index(keys, **options)
        return collection

    def snapshot(self):
        """{db: {collection: (sorted docs, sorted index names)}} for comparisons."""
        state = {}
        for db_name, db in self.databases.items():
            for collection in db._existing():
                docs = sorted(collection.docs, key=lambda doc: str(doc['_id']))
                names = sorted(index['name'] for index in collection.indexes)
                state.setdefault(db_name, {})[collection.name] = (docs, names)
        return state


class FakeStorageAdapter(StorageAdapter):

    def __init__(self):
        self.objects = {}
        self.puts = 0

    def put_json(self, bucket, key, payload):
        self.puts += 1
        self.objects[(bucket, key)] = dumps_payload(payload)

    def get_json(self, bucket, key):
        if (bucket, key) not in self.objects:
            raise LookupError(f"The specified blob does not exist: {bucket}/{key}")
        return loads_payload(self.objects[(bucket, key)])

    def delete(self, bucket, key):
        del self.objects[(bucket, key)]


class FakeStorageRouter(StorageRouter):

    def __init__(self, client, bucket='xronox-test'):
        self.client = client
        self.adapter = FakeStorageAdapter()
        self.bucket = bucket
        self.shutdown_calls = 0

    def route(self, database, collection):
        return RouteInfo(database=database, collection=collection, mongo_uri='mongodb://fake')

    def get_client(self, route_info):
        return self.client

    def get_storage_handle(self, route_info):
        return StorageHandle(adapter=self.adapter, bucket=self.bucket)

    def shutdown(self):
        self.shutdown_calls += 1


class FakeDownload:

    def __init__(self, data):
        self._data = data

    def readall(self):
        return self._data


class FakeBlobClient:

    def __init__(self, service, container, blob):
        self.service = service
        self.container = container
        self.blob = blob

    def upload_blob(self, data, overwrite=False, content_settings=None, timeout=None):
        if not overwrite and (self.container, self.blob) in self.service.blobs:
            raise ResourceExistsError("The specified blob already exists.")
        self.service.blobs[(self.container, self.blob)] = bytes(data)
        self.service.uploads.append({
            'container': self.container,
            'blob': self.blob,
            'overwrite': overwrite,
            'content_type': getattr(content_settings, 'content_type', None),
        })

    def download_blob(self, timeout=None):
        if (self.container, self.blob) not in self.service.blobs:
            raise ResourceNotFoundError("The specified blob does not exist.")
        return FakeDownload(self.service.blobs[(self.container, self.blob)])


class FakeContainerClient:

    def __init__(self, service, name):
        self.service = service
        self.name = name

    def create_container(self):
        if self.name in self.service.containers:
            raise ResourceExistsError("The specified container already exists.")
        self.service.containers.add(self.name)


class FakeBlobServiceClient:
    """Just the BlobServiceClient calls the Azure adapter makes."""

    def __init__(self):
        self.containers = set()
        self.blobs = {}
        self.uploads = []
        self.closed = False

    def get_container_client(self, container):
        return FakeContainerClient(self, container)

    def get_blob_client(self, container, blob):
        return FakeBlobClient(self, container, blob)

    def close(self):
        self.closed = True
