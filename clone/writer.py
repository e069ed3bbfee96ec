"""
Batch writer with backoff.

A page is written with one unordered bulk insert. Transient network faults
retry the whole page with a quadratic delay; anything else, or running out
of attempts, drops to one insert per document with the same retry policy.
A document that still cannot be written aborts the collection.
"""

import logging
import re
import time
from typing import Any, Callable, Dict, List

from pymongo.errors import BulkWriteError, ConnectionFailure, DuplicateKeyError

logger = logging.getLogger(__name__)

MAX_RETRIES = 7
RETRY_BASE_MS = 500
RETRY_CAP_MS = 20000

DUPLICATE_KEY_CODES = frozenset({11000, 11001, 12582})

NETWORK_ERROR_PATTERN = re.compile(
    r'(EPIPE|ETIMEDOUT|ECONNRESET|timed out|broken pipe|connection reset|'
    r'connection closed|socket closed)',
    re.IGNORECASE,
)


class DocumentWriteError(Exception):
    """A document could not be written even after the per-document fallback."""

    def __init__(self, document_id: Any, cause: BaseException):
        self.document_id = document_id
        self.cause = cause
        super().__init__(f"Failed to insert document {document_id!r}: {cause}")


def is_network_error(error: BaseException) -> bool:
    """True for faults worth retrying: timeouts, resets, broken pipes, closed sockets."""
    if isinstance(error, (ConnectionFailure, ConnectionError, TimeoutError)):
        return True
    return bool(NETWORK_ERROR_PATTERN.search(str(error)))


def is_duplicate_key_only(error: BulkWriteError) -> bool:
    details = error.details or {}
    write_errors = details.get('writeErrors') or []
    if not write_errors or details.get('writeConcernErrors'):
        return False
    return all(err.get('code') in DUPLICATE_KEY_CODES for err in write_errors)


def backoff_delay(attempt: int, base_ms: int = RETRY_BASE_MS, cap_ms: int = RETRY_CAP_MS) -> int:
    """Delay in milliseconds before retry number ``attempt + 1``."""
    return min(cap_ms, base_ms * attempt * attempt)


class BatchWriter:
    """Writes pages into one destination collection."""

    def __init__(
        self,
        collection,
        max_retries: int = MAX_RETRIES,
        base_ms: int = RETRY_BASE_MS,
        cap_ms: int = RETRY_CAP_MS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        self.collection = collection
        self.max_retries = max_retries
        self.base_ms = base_ms
        self.cap_ms = cap_ms
        self.sleep = sleep

    @classmethod
    def from_config(cls, collection, cfg, sleep: Callable[[float], None] = time.sleep) -> 'BatchWriter':
        return cls(
            collection,
            max_retries=cfg.CLONE_MAX_RETRIES,
            base_ms=cfg.CLONE_RETRY_BASE_MS,
            cap_ms=cfg.CLONE_RETRY_CAP_MS,
            sleep=sleep,
        )

    @property
    def namespace(self) -> str:
        return getattr(self.collection, 'full_name', None) or getattr(self.collection, 'name', '?')

    def write(self, documents: List[Dict[str, Any]]) -> int:
        """Commit a page and return how many of its documents are now present."""
        if not documents:
            return 0

        attempt = 1
        while True:
            try:
                self.collection.insert_many(documents, ordered=False, bypass_document_validation=True)
                return len(documents)
            except BulkWriteError as e:
                if is_duplicate_key_only(e):
                    # Part of an earlier attempt landed before the error surfaced
                    logger.debug(f"Duplicate keys on {self.namespace} treated as already committed")
                    return len(documents)
                error = e
            except Exception as e:
                error = e

            if not is_network_error(error) or attempt >= self.max_retries:
                break

            delay = backoff_delay(attempt, self.base_ms, self.cap_ms)
            logger.warning(
                f"    ⚠️  Network issue while inserting batch ({error}). "
                f"Retrying in {delay}ms (attempt {attempt + 1}/{self.max_retries})."
            )
            self._wait(delay)
            attempt += 1

        logger.warning(
            f"    ⚠️  Batch insert into {self.namespace} failed ({error}). "
            f"Falling back to {len(documents)} individual inserts."
        )
        return self.write_individually(documents)

    def write_individually(self, documents: List[Dict[str, Any]]) -> int:
        committed = 0
        for doc in documents:
            self._insert_one(doc)
            committed += 1
        return committed

    def _insert_one(self, doc: Dict[str, Any]) -> None:
        attempt = 1
        while True:
            try:
                self.collection.insert_one(doc, bypass_document_validation=True)
                return
            except DuplicateKeyError:
                logger.debug(f"Document {doc.get('_id')!r} already present in {self.namespace}")
                return
            except Exception as e:
                if not is_network_error(e) or attempt >= self.max_retries:
                    raise DocumentWriteError(doc.get('_id'), e) from e
                delay = backoff_delay(attempt, self.base_ms, self.cap_ms)
                logger.warning(
                    f"    ⚠️  Network issue while inserting document {doc.get('_id')!r} ({e}). "
                    f"Retrying in {delay}ms (attempt {attempt + 1}/{self.max_retries})."
                )
                self._wait(delay)
                attempt += 1

    def _wait(self, delay_ms: int) -> None:
        self.sleep(delay_ms / 1000.0)
        self.probe()

    def probe(self) -> bool:
        """Ping the destination; a failed ping is only logged."""
        try:
            self.collection.database.command('ping')
            return True
        except Exception as e:
            logger.warning(f"    ⚠️  Ping after failure also errored: {e}")
            return False
