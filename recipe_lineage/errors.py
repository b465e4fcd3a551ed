"""Error taxonomy for the lineage core.

"Nothing changed" is never an error here: an empty diff or a learning that
could not be located is a normal result. These exceptions mean the operation
itself could not complete.
"""

from typing import Optional


class LineageError(Exception):
    """Base class for lineage failures."""


class ValidationError(LineageError):
    """Input rejected before any write (e.g. empty ingredient or step set)."""


class NotFoundError(LineageError):
    """Recipe, version, source link or session missing, or owned by someone else."""

    def __init__(self, kind: str, identifier: Optional[str] = None, detail: Optional[str] = None):
        self.kind = kind
        self.identifier = identifier
        super().__init__(detail or f"{kind} not found")


class ConflictExhaustedError(LineageError):
    """Version allocator hit its retry ceiling without a successful insert."""

    def __init__(self, master_recipe_id: str, attempts: int):
        self.master_recipe_id = master_recipe_id
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a version number for recipe {master_recipe_id} after {attempts} attempts"
        )


class ForkedRecipeError(LineageError):
    """Version allocation requested for a forked recipe (forks only ever have v1)."""


class SessionAlreadyFinalizedError(LineageError):
    """Cook session learnings were already consumed."""


class VersionDeleteError(LineageError):
    """Version deletion refused by a safety rule."""


# --- Store level ---

class LineageStoreError(LineageError):
    """Write to the lineage store failed."""


class VersionNumberConflict(LineageStoreError):
    """Insert rejected by the (master_recipe_id, version_number) uniqueness constraint."""

    def __init__(self, master_recipe_id: str, version_number: int):
        self.master_recipe_id = master_recipe_id
        self.version_number = version_number
        super().__init__(f"Version {version_number} already exists for recipe {master_recipe_id}")
