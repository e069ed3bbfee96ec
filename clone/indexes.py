import logging
from typing import Any, Dict, List, Tuple

logger = logging.getLogger(__name__)

PRIMARY_INDEX_NAME = '_id_'

# Options copied when they are booleans
BOOLEAN_OPTIONS = ('unique', 'sparse', 'background', 'hidden')
# Options copied when they are truthy
TRUTHY_OPTIONS = (
    'partialFilterExpression',
    'collation',
    'wildcardProjection',
    'weights',
    'default_language',
    'language_override',
    'storageEngine',
)
# Options copied whenever they are present
PRESENT_OPTIONS = (
    'textIndexVersion',
    '2dsphereIndexVersion',
    'bits',
    'min',
    'max',
    'bucketSize',
)


def build_index_options(index: Dict[str, Any]) -> Dict[str, Any]:
    """Map a source index description onto create_index keyword options."""
    options = {'name': index.get('name')}

    for option in BOOLEAN_OPTIONS:
        if isinstance(index.get(option), bool):
            options[option] = index[option]

    ttl = index.get('expireAfterSeconds')
    if isinstance(ttl, (int, float)) and not isinstance(ttl, bool):
        options['expireAfterSeconds'] = ttl

    for option in TRUTHY_OPTIONS:
        if index.get(option):
            options[option] = index[option]

    for option in PRESENT_OPTIONS:
        if index.get(option) is not None:
            options[option] = index[option]

    return options


def index_keys(index: Dict[str, Any]) -> List[Tuple[str, Any]]:
    return list(index['key'].items())


def sync_indexes(source_collection, destination_collection) -> Tuple[int, int]:
    """
    Recreate every secondary index of the source on the destination.

    A failure on one index is logged and the next one is attempted.
    Returns (created, failed).
    """
    created = 0
    failed = 0
    namespace = getattr(destination_collection, 'full_name', destination_collection.name)

    for index in source_collection.list_indexes():
        index = dict(index)
        if index.get('name') == PRIMARY_INDEX_NAME:
            continue
        try:
            destination_collection.create_index(index_keys(index), **build_index_options(index))
            created += 1
        except Exception as e:
            failed += 1
            logger.warning(
                f"    ⚠️  Failed to create index \"{index.get('name')}\" on collection \"{namespace}\". ({e})"
            )

    return created, failed
