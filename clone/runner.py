"""
Copy orchestrator.

Sequences a clone run: conflict resolution once, then per database the
overwrite drop, collection creation, paged copy and index replay. Work is
strictly serial; the first uncaught error ends the run.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from clone.conflicts import ConflictResolution, Decision, resolve_conflicts
from clone.indexes import sync_indexes
from clone.reader import iter_pages
from clone.writer import BatchWriter
from utils.mongo import close_quietly, list_database_names
from utils.progress import ProgressPrinter

logger = logging.getLogger(__name__)


@dataclass
class CloneReport:
    copied: Dict[str, Dict[str, int]] = field(default_factory=dict)
    skipped_collections: List[str] = field(default_factory=list)
    failed_indexes: int = 0

    def record(self, db_name: str, collection_name: str, count: int) -> None:
        self.copied.setdefault(db_name, {})[collection_name] = count

    @property
    def total_documents(self) -> int:
        return sum(sum(per_db.values()) for per_db in self.copied.values())


def sanitize_options(options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop null option values the server would reject."""
    return {key: value for key, value in (options or {}).items() if value is not None}


def safe_estimated_count(collection) -> int:
    try:
        return collection.estimated_document_count()
    except Exception as e:
        logger.debug(f"estimated_document_count failed on {collection.name}: {e}")
        result = list(collection.aggregate([{'$count': 'count'}]))
        return result[0]['count'] if result else 0


def create_destination_collection(destination_db, name: str, options: Optional[Dict[str, Any]]) -> None:
    options = sanitize_options(options)
    try:
        destination_db.create_collection(name, **options)
        return
    except Exception as e:
        if not options:
            logger.warning(f"    ⚠️  Failed to create collection \"{name}\" ({e}). It will be created on first insert.")
            return
        logger.warning(
            f"    ⚠️  Failed to create collection with source options. Falling back to default creation. ({e})"
        )
    try:
        destination_db.create_collection(name)
    except Exception as e:
        logger.warning(f"    ⚠️  Default creation of \"{name}\" also failed ({e}). It will be created on first insert.")


def _keepalive(database) -> None:
    try:
        database.command('ping')
    except Exception as e:
        logger.debug(f"Keepalive ping failed: {e}")


def clone_collection(
    source_collection,
    destination_collection,
    cfg,
    progress: Optional[ProgressPrinter] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Copy every document page by page; returns the committed count."""
    progress = progress or ProgressPrinter()
    total = safe_estimated_count(source_collection)
    writer = BatchWriter.from_config(destination_collection, cfg, sleep=sleep)
    processed = 0

    for page in iter_pages(source_collection, cfg.CLONE_PAGE_SIZE):
        processed += writer.write(page)
        progress.update(processed, total)
        _keepalive(destination_collection.database)

    progress.done(processed, max(total, processed))
    return processed


def clone_databases(
    source,
    destination,
    databases: List[str],
    overwrite: Iterable[str],
    cfg,
    skip_indexes: bool = False,
    progress: Optional[ProgressPrinter] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> CloneReport:
    """Clone the given databases from ``source`` into ``destination``."""
    overwrite = set(overwrite)
    report = CloneReport()
    total_databases = len(databases)

    for db_position, db_name in enumerate(databases, start=1):
        database_percent = round(db_position * 100 / total_databases)
        print(f"Starting clone for database \"{db_name}\" [{database_percent}% of databases]")

        source_db = source[db_name]
        destination_db = destination[db_name]
        should_overwrite = db_name in overwrite

        if should_overwrite:
            print(f"  • Overwrite requested – dropping destination database \"{db_name}\"")
            destination.drop_database(db_name)

        source_collections = [dict(info) for info in source_db.list_collections()]
        if not source_collections:
            print(f"  • No collections found in \"{db_name}\" – skipping")
            continue

        destination_names = set(destination_db.list_collection_names())
        total_collections = len(source_collections)

        for position, info in enumerate(source_collections, start=1):
            collection_name = info.get('name')
            if not collection_name:
                continue
            collection_percent = round(position * 100 / total_collections)

            if not should_overwrite and collection_name in destination_names:
                print(f"  • Skipping collection \"{collection_name}\" – already exists on destination")
                report.skipped_collections.append(f"{db_name}.{collection_name}")
                continue

            print(f"  • Cloning collection \"{collection_name}\" [{collection_percent}% of collections]")

            try:
                if collection_name in destination_names:
                    destination_db[collection_name].drop()
                    destination_names.discard(collection_name)

                create_destination_collection(destination_db, collection_name, info.get('options'))
                destination_names.add(collection_name)

                if info.get('type') == 'view':
                    # Views carry no documents or indexes of their own
                    report.record(db_name, collection_name, 0)
                    continue

                copied = clone_collection(
                    source_db[collection_name],
                    destination_db[collection_name],
                    cfg,
                    progress=progress,
                    sleep=sleep,
                )
                report.record(db_name, collection_name, copied)

                if not skip_indexes:
                    _, failed = sync_indexes(source_db[collection_name], destination_db[collection_name])
                    report.failed_indexes += failed
            except Exception as e:
                logger.error(f"❌ Failed while cloning \"{db_name}.{collection_name}\": {e}")
                raise

        print(f"Finished cloning database \"{db_name}\"")

    return report


def print_summary(source_uri: str, destination_uri: str, queued: List[str], overwrite: List[str], skip_indexes: bool) -> None:
    print("Summary:")
    print(f"  Source URI: {source_uri}")
    print(f"  Destination URI: {destination_uri}")
    print(f"  Databases queued: {', '.join(queued)}")
    if overwrite:
        print(f"  Will overwrite: {', '.join(overwrite)}")
    if skip_indexes:
        print("  Indexes will be skipped.")


def run_clone_session(
    source,
    destination,
    selected: List[str],
    decide: Callable[[str], Decision],
    cfg,
    skip_indexes: bool = False,
    confirm: Optional[Callable[[], bool]] = None,
    source_uri: str = '',
    destination_uri: str = '',
    progress: Optional[ProgressPrinter] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[CloneReport]:
    """
    Resolve conflicts, confirm, and clone. Both clients are closed on every
    exit path. Returns None when nothing was cloned; raises CloneAborted
    when the operator cancels on a conflict, before anything is written.
    """
    try:
        _, existing = list_database_names(destination)
        resolution: ConflictResolution = resolve_conflicts(selected, existing, decide)
        resolution.raise_if_cancelled()

        if not resolution.conflicts:
            print("No conflicts detected on destination.")
        if resolution.overwrite:
            print(f"Will overwrite: {', '.join(resolution.overwrite)}")
        if resolution.skip:
            print(f"Will skip: {', '.join(resolution.skip)}")

        queued = resolution.databases_to_clone(selected)
        if not queued:
            print("No databases left to clone after resolving conflicts.")
            return None

        overwrite = [name for name in resolution.overwrite if name in queued]
        print_summary(source_uri, destination_uri, queued, overwrite, skip_indexes)

        if confirm is not None and not confirm():
            print("Cloning cancelled by user.")
            return None

        report = clone_databases(
            source,
            destination,
            queued,
            overwrite,
            cfg,
            skip_indexes=skip_indexes,
            progress=progress,
            sleep=sleep,
        )
        print("✅ Cloning completed successfully.")
        return report
    finally:
        close_quietly(source, 'source')
        close_quietly(destination, 'destination')
