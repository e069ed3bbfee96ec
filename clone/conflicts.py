"""
Conflict resolution between selected source databases and databases that
already exist on the destination.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List


class Decision(str, Enum):
    OVERWRITE = 'overwrite'
    SKIP = 'skip'
    ABORT = 'abort'


class CloneAborted(Exception):
    """The operator cancelled the run while resolving conflicts."""

    def __init__(self, database: str):
        self.database = database
        super().__init__(f"Cloning cancelled by user due to conflict on \"{database}\"")


@dataclass
class ConflictResolution:
    conflicts: List[str] = field(default_factory=list)
    overwrite: List[str] = field(default_factory=list)
    skip: List[str] = field(default_factory=list)
    cancelled: bool = False
    aborted_on: str = ''

    def databases_to_clone(self, selected: Iterable[str]) -> List[str]:
        return [name for name in selected if name not in self.skip]

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CloneAborted(self.aborted_on)


def find_conflicts(selected: Iterable[str], existing: Iterable[str]) -> List[str]:
    """Selected names already present at the destination, in selection order."""
    existing = set(existing)
    return [name for name in selected if name in existing]


def resolve_conflicts(
    selected: Iterable[str],
    existing: Iterable[str],
    decide: Callable[[str], Decision],
) -> ConflictResolution:
    """
    Ask ``decide`` about every conflicting database, in order.

    The first abort stops the questioning; nothing has been written yet, so
    the caller only has to stop.
    """
    resolution = ConflictResolution(conflicts=find_conflicts(selected, existing))

    for name in resolution.conflicts:
        decision = Decision(decide(name))
        if decision is Decision.ABORT:
            resolution.cancelled = True
            resolution.aborted_on = name
            return resolution
        if decision is Decision.OVERWRITE:
            resolution.overwrite.append(name)
        else:
            resolution.skip.append(name)

    return resolution
