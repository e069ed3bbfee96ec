"""
Externalization migrator.

Moves the body of every record of a collection into object storage and
replaces the record with a compact head document pointing at it. Records are
processed one at a time in ``_id`` order; with ``resume`` a record whose head
already carries a storage key is skipped, so repeated runs converge.
"""

import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from clone.reader import iter_pages
from externalize.router import StorageHandle, StorageRouter, dumps_payload
from models.head import HeadDocument, StoragePointer, storage_key_of
from utils.mongo import close_quietly
from utils.progress import ProgressPrinter

logger = logging.getLogger(__name__)

PAGE_SIZE = 50
REVISION = 0
INTERNAL_FIELDS = ('_id', '_system')


class RecordOutcome(str, Enum):
    SKIPPED = 'skipped'
    HEAD_WRITTEN = 'head_written'


@dataclass
class MigrationStats:
    collection: str
    total: int = 0
    migrated: int = 0
    skipped: int = 0
    repaired: int = 0

    @property
    def processed(self) -> int:
        return self.migrated + self.skipped


@dataclass
class ValidationReport:
    collection: str
    validated: int = 0
    failures: List[Tuple[Any, str]] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.failures


@dataclass
class CollectionTarget:
    name: str
    head_collection: Any
    base_collection: Any
    storage: StorageHandle
    route: Any


def has_usable_id(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def build_payload(record: Dict[str, Any]) -> Dict[str, Any]:
    """Record body without bookkeeping fields, with a business ``id`` guaranteed."""
    payload = {key: value for key, value in record.items() if key not in INTERNAL_FIELDS}
    if not has_usable_id(payload.get('id')):
        payload['id'] = str(uuid.uuid4())
    return payload


def encode_payload(payload: Dict[str, Any]) -> Tuple[bytes, int, str]:
    """Canonical bytes of the payload, their size and sha256 hex digest."""
    body = dumps_payload(payload).encode('utf-8')
    return body, len(body), hashlib.sha256(body).hexdigest()


def build_meta_indexed(record: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    meta = record.get('metaIndexed')
    meta_indexed = dict(meta) if isinstance(meta, dict) else {}
    meta_indexed['id'] = payload['id']
    return meta_indexed


class ExternalizationMigrator:

    def __init__(
        self,
        source_client,
        router: StorageRouter,
        database: str,
        page_size: int = PAGE_SIZE,
        progress: Optional[ProgressPrinter] = None,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.source_client = source_client
        self.router = router
        self.database = database
        self.page_size = page_size
        self.progress = progress or ProgressPrinter()
        self.now = now

    def migrate_collections(self, collections: List[str], resume: bool = False, validate: bool = False) -> Dict[str, MigrationStats]:
        """Migrate each collection in order; the router is always shut down."""
        results = {}
        try:
            for position, collection_name in enumerate(collections, start=1):
                print(f"• Migrating collection \"{collection_name}\" [{position}/{len(collections)}]")
                results[collection_name] = self.migrate_collection(collection_name, resume=resume, validate=validate)
        finally:
            self.router.shutdown()
        return results

    def open_target(self, collection_name: str) -> CollectionTarget:
        route = self.router.route(self.database, collection_name)
        target_db = self.router.get_client(route)[route.database]
        return CollectionTarget(
            name=collection_name,
            head_collection=target_db[f"{collection_name}_head"],
            base_collection=target_db[collection_name],
            storage=self.router.get_storage_handle(route),
            route=route,
        )

    def ensure_head_indexes(self, head_collection) -> None:
        for keys in ('id', '_system.storage.key'):
            try:
                head_collection.create_index(keys)
            except Exception as e:
                logger.warning(f"    ⚠️  Failed to create index on {head_collection.name}.{keys}: {e}")

    def migrate_collection(self, collection_name: str, resume: bool = False, validate: bool = False) -> MigrationStats:
        source_collection = self.source_client[self.database][collection_name]
        stats = MigrationStats(collection=collection_name)

        # Total is captured once; records added mid-run still get processed
        stats.total = source_collection.count_documents({})
        if stats.total == 0:
            print("    • No documents found. Skipping.")
            return stats

        target = self.open_target(collection_name)
        self.ensure_head_indexes(target.head_collection)

        for page in iter_pages(source_collection, self.page_size):
            for record in page:
                outcome = self.migrate_record(target, record, resume, stats)
                if outcome is RecordOutcome.SKIPPED:
                    stats.skipped += 1
                else:
                    stats.migrated += 1
                self.progress.update(stats.processed, stats.total)

        self.progress.done(stats.processed, max(stats.total, stats.processed))
        if stats.skipped:
            logger.info(f"    Skipped {stats.skipped} already migrated record(s), repaired {stats.repaired}")

        if validate:
            self.validate_collection(target)

        return stats

    def migrate_record(self, target: CollectionTarget, record: Dict[str, Any], resume: bool, stats: MigrationStats) -> RecordOutcome:
        record_id = record['_id']

        if resume:
            existing_head = target.head_collection.find_one({'_id': record_id})
            head_key = storage_key_of(existing_head)
            if head_key:
                if storage_key_of(target.base_collection.find_one({'_id': record_id})) != head_key:
                    # Crashed between the two upserts last time
                    target.base_collection.replace_one({'_id': record_id}, existing_head, upsert=True)
                    stats.repaired += 1
                return RecordOutcome.SKIPPED

        payload = build_payload(record)
        _, size, checksum = encode_payload(payload)
        key = self.router.derive_key(target.name, str(record_id), REVISION)

        target.storage.adapter.put_json(target.storage.bucket, key, payload)

        cv = self.router.increment_change_version(target.route)

        head = HeadDocument.build(
            record_id=record_id,
            business_id=payload['id'],
            meta_indexed=build_meta_indexed(record, payload),
            pointer=StoragePointer(bucket=target.storage.bucket, key=key, size=size, checksum=checksum),
            cv=cv,
            now=self.now(),
        ).to_record()

        # Head namespace first: it is the resume marker
        target.head_collection.replace_one({'_id': record_id}, head, upsert=True)
        target.base_collection.replace_one({'_id': record_id}, head, upsert=True)
        return RecordOutcome.HEAD_WRITTEN

    def validate_collection(self, target: CollectionTarget) -> ValidationReport:
        """Read back every stored body referenced by a head. Never mutates."""
        report = ValidationReport(collection=target.name)

        for page in iter_pages(target.head_collection, self.page_size):
            for head in page:
                key = storage_key_of(head)
                if not key:
                    continue
                pointer = head['_system']['storage']
                bucket = pointer.get('bucket') or target.storage.bucket
                try:
                    payload = target.storage.adapter.get_json(bucket, key)
                    checksum = pointer.get('checksum')
                    if checksum and encode_payload(payload)[2] != checksum:
                        raise ValueError("checksum mismatch")
                    report.validated += 1
                except Exception as e:
                    report.failures.append((head.get('_id'), key))
                    logger.warning(f"⚠️  Validation failed for {target.name}/{key}: {e}")

        if report.passed:
            print(f"    • Validation passed ({report.validated} documents)")
        else:
            print(f"    • Validation completed with {len(report.failures)} failures")
        return report


def print_summary(source_uri: str, database: str, collections: List[str], resume: bool, validate: bool) -> None:
    print("Summary:")
    print(f"  Mongo URI: {source_uri}")
    print(f"  Database: {database}")
    print(f"  Collections: {', '.join(collections)}")
    if resume:
        print("  Resume mode: enabled (skip existing heads)")
    if validate:
        print("  Validation: enabled (check bucket after copy)")


def run_externalization_session(
    client,
    router: StorageRouter,
    database: str,
    collections: List[str],
    cfg,
    resume: bool = False,
    validate: bool = False,
    confirm: Optional[Callable[[], bool]] = None,
    source_uri: str = '',
    progress: Optional[ProgressPrinter] = None,
) -> Optional[Dict[str, MigrationStats]]:
    """Summarize, confirm and migrate. The client is closed on every exit path."""
    try:
        print_summary(source_uri, database, collections, resume, validate)
        if confirm is not None and not confirm():
            print("Xronox migration cancelled by user.")
            router.shutdown()
            return None

        migrator = ExternalizationMigrator(
            client,
            router,
            database,
            page_size=cfg.XRONOX_PAGE_SIZE,
            progress=progress,
        )
        results = migrator.migrate_collections(collections, resume=resume, validate=validate)
        print("✅ Xronox migration completed.")
        return results
    finally:
        close_quietly(client, 'Xronox Mongo')
