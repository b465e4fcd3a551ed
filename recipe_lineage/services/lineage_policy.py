"""Lineage decisions: fork vs. outsourced, source attribution, version view.

Forked recipes (forked_from_id set) keep a single v1 that is overwritten in
place. Outsourced recipes never touch v1 again; every edit allocates a new
version. Callers evaluate the branch once per operation and pick the write
path from it.
"""

from enum import Enum
from typing import Any, Optional, Sequence, TypeVar, Union


class LineageBranch(str, Enum):
    OUTSOURCED = "outsourced"
    FORKED = "forked"


class _Unset:
    """Marker for "no source id was provided" (distinct from an explicit None)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

V = TypeVar("V")


def lineage_branch(recipe: Any) -> LineageBranch:
    if recipe.forked_from_id is not None:
        return LineageBranch.FORKED
    return LineageBranch.OUTSOURCED


def resolve_based_on_source_id(
    provided: Union[Optional[str], _Unset] = UNSET,
    *,
    current_version_source_id: Optional[str] = None,
    original_version_source_id: Optional[str] = None,
) -> Optional[str]:
    """Pick the source attribution for a new or updated version.

    Resolution order:
    1. provided, if it was passed at all (an explicit None is honored)
    2. the current version's based_on_source_id
    3. the original (v1) version's based_on_source_id
    """
    if provided is not UNSET:
        return provided
    if current_version_source_id is not None:
        return current_version_source_id
    return original_version_source_id


def derive_current_version(selected_version_number: Optional[int], versions: Sequence[V]) -> Optional[V]:
    """Which version the view toggle shows.

    Selecting 1 shows the original. Selecting a derived number shows that
    version if it exists. Anything else (including no selection) shows the
    highest derived version, falling back to the original.
    """
    by_number = {v.version_number: v for v in versions}
    original = by_number.get(1)

    if selected_version_number == 1:
        return original
    if selected_version_number is not None and selected_version_number in by_number:
        return by_number[selected_version_number]

    derived = [n for n in by_number if n > 1]
    if derived:
        return by_number[max(derived)]
    return original


def is_viewing_original(selected_version_number: Optional[int], shown_version_number: Optional[int]) -> bool:
    """True when the toggle ends up on v1, whether picked or fallen back to."""
    if selected_version_number == 1:
        return True
    return shown_version_number == 1
