"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/grouper.py
Turns the duplicate index into numbered DuplicateGroups.
Read-only projection: nothing here mutates the index.
"""

from typing import TYPE_CHECKING, Dict, List

from dupindex.core.models import DuplicateGroup

if TYPE_CHECKING:
    from dupindex.core.index import DuplicateIndex


def snapshot(index: "DuplicateIndex") -> List[DuplicateGroup]:
    """
    Deterministic listing of the current duplicate groups.

    - Only digests with 2+ members are emitted
    - Groups are numbered from 1 in order of the digest's first insertion
    - Members keep discovery order, so the first entry is the presumptive original
    """
    views = [view for view in index.bucket_views() if len(view[2]) >= 2]
    views.sort(key=lambda view: view[0])

    groups = []
    for number, (_, digest, records) in enumerate(views, 1):
        groups.append(DuplicateGroup(
            group_number=number,
            digest=digest,
            members=tuple(r.path for r in records),
            size=records[0].size,
            linked=tuple(r.path for r in records if r.is_link),
        ))
    return groups


def to_mapping(groups: List[DuplicateGroup]) -> Dict[str, List[str]]:
    """Boundary shape: hex digest -> member paths, in group-number order."""
    return {group.digest.hex: [str(path) for path in group.members] for group in groups}


def find_group(groups: List[DuplicateGroup], group_number: int) -> DuplicateGroup:
    """Looks up a group by its displayed number."""
    for group in groups:
        if group.group_number == group_number:
            return group
    raise KeyError(f"No duplicate group #{group_number}")
