from mongoengine import (EmbeddedDocument, EmbeddedDocumentField, StringField, IntField,
                         DateTimeField, ListField, DynamicField)
from datetime import datetime


class StoragePointer(EmbeddedDocument):
    """Where the externalized body of a record lives."""

    bucket = StringField(required=True)
    key = StringField(required=True)
    size = IntField(required=True, min_value=0)
    checksum = StringField(required=True, regex=r'^[0-9a-f]{64}$')  # sha256 hex


class HeadTimestamps(EmbeddedDocument):
    created_at = DateTimeField(db_field='createdAt', default=datetime.utcnow)
    updated_at = DateTimeField(db_field='updatedAt', default=datetime.utcnow)


class HeadTracking(EmbeddedDocument):
    job_ids = ListField(StringField(), db_field='jobIds')


class HeadSystem(EmbeddedDocument):
    ov = IntField(default=0, min_value=0)
    cv = IntField(required=True, min_value=1)
    storage = EmbeddedDocumentField(StoragePointer, required=True)
    timestamps = EmbeddedDocumentField(HeadTimestamps, default=HeadTimestamps)
    tracking = EmbeddedDocumentField(HeadTracking, default=HeadTracking)


class HeadDocument(EmbeddedDocument):
    """Pointer record left in place of an externalized document.

    Stored both in ``<collection>_head`` and over the original record. The
    populated ``_system.storage.key`` is the durable "already migrated" marker.
    """

    record_id = DynamicField(db_field='_id', required=True)
    business_id = DynamicField(db_field='id')
    meta_indexed = DynamicField(db_field='metaIndexed', default=dict)
    system = EmbeddedDocumentField(HeadSystem, db_field='_system', required=True)

    @classmethod
    def build(cls, record_id, business_id, meta_indexed, pointer, cv, now=None):
        now = now or datetime.utcnow()
        return cls(
            record_id=record_id,
            business_id=business_id,
            meta_indexed=meta_indexed,
            system=HeadSystem(
                ov=0,
                cv=cv,
                storage=pointer,
                timestamps=HeadTimestamps(created_at=now, updated_at=now),
                tracking=HeadTracking(job_ids=[]),
            ),
        )

    def to_record(self):
        """Validated plain dict ready for replace_one."""
        self.validate()
        return self.to_mongo().to_dict()


def storage_key_of(record):
    """The storage key recorded on a head-shaped document, or None."""
    if not isinstance(record, dict):
        return None
    system = record.get('_system')
    if not isinstance(system, dict):
        return None
    storage = system.get('storage')
    if not isinstance(storage, dict):
        return None
    return storage.get('key') or None
