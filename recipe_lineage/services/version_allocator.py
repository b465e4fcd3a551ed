"""Version number allocation under concurrent writers.

No lock is held between reading the current max and inserting: the store's
(master_recipe_id, version_number) uniqueness constraint is the only
serialization point, and a rejected insert is retried with a fresh max.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..errors import (
    ValidationError,
    NotFoundError,
    ConflictExhaustedError,
    ForkedRecipeError,
    LineageStoreError,
    VersionNumberConflict,
)
from ..models import RecipeVersion
from ..schemas import Ingredient, Step, CreationMode
from ..settings import settings
from .learning_applicator import DEFAULT_SESSION_TITLE
from .lineage_store import LineageStore

logger = logging.getLogger("lineage.allocator")

DEFAULT_TITLES = {
    "import": "Original",
    "edit": "Manual Edit",
    "cook_session": DEFAULT_SESSION_TITLE,
    "source_apply": "From Source",
}


@dataclass
class VersionMetadata:
    mode: CreationMode
    change_notes: Optional[str] = None
    parent_version_id: Optional[str] = None
    based_on_source_id: Optional[str] = None
    created_from_session_id: Optional[str] = None
    created_from_title: Optional[str] = None


@dataclass
class AllocatedVersion:
    version: RecipeVersion
    # False when the insert succeeded but the recipe could not be repointed
    is_current: bool = True


def ensure_content(ingredients: Sequence[Ingredient], steps: Sequence[Step]) -> None:
    """A version always has at least one ingredient and one step."""
    if not ingredients:
        raise ValidationError("A version needs at least one ingredient")
    if not steps:
        raise ValidationError("A version needs at least one step")


def dump_content(ingredients: Sequence[Ingredient], steps: Sequence[Step]) -> tuple[list[dict], list[dict]]:
    return (
        [i.model_dump(mode="json") for i in ingredients],
        [s.model_dump(mode="json") for s in steps],
    )


class VersionAllocator:
    """Creates numbered versions for outsourced (non-forked) recipes."""

    def __init__(self, store: LineageStore, max_attempts: Optional[int] = None):
        self.store = store
        self.max_attempts = max_attempts or settings.version_max_attempts

    def create_version(
        self,
        master_recipe_id: str,
        ingredients: Sequence[Ingredient],
        steps: Sequence[Step],
        metadata: VersionMetadata,
    ) -> AllocatedVersion:
        """Insert the next version for a recipe and make it current.

        Raises:
            ValidationError: empty ingredient or step set (before any write)
            NotFoundError: recipe does not exist
            ForkedRecipeError: forks are edited in place, never allocated
            ConflictExhaustedError: every attempt lost the race for a number
        """
        ensure_content(ingredients, steps)

        recipe = self.store.get_master_recipe(master_recipe_id)
        if recipe is None:
            raise NotFoundError("Master recipe", master_recipe_id)
        if recipe.forked_from_id is not None:
            raise ForkedRecipeError(f"Recipe {master_recipe_id} is a fork; edit version 1 in place")

        ingredient_rows, step_rows = dump_content(ingredients, steps)
        title = metadata.created_from_title or DEFAULT_TITLES.get(metadata.mode, "New Version")

        version = None
        for attempt in range(1, self.max_attempts + 1):
            candidate = (self.store.get_max_version_number(master_recipe_id) or 0) + 1
            try:
                version = self.store.insert_version(
                    master_recipe_id=master_recipe_id,
                    version_number=candidate,
                    title=recipe.title,
                    ingredients=ingredient_rows,
                    steps=step_rows,
                    change_notes=metadata.change_notes,
                    parent_version_id=metadata.parent_version_id,
                    based_on_source_id=metadata.based_on_source_id,
                    created_from_mode=metadata.mode,
                    created_from_session_id=metadata.created_from_session_id,
                    created_from_title=title,
                )
                break
            except VersionNumberConflict:
                logger.info(
                    f"Version number {candidate} conflict for recipe {master_recipe_id}, "
                    f"retrying (attempt {attempt}/{self.max_attempts})"
                )

        if version is None:
            logger.error(f"Version allocation exhausted for recipe {master_recipe_id}")
            raise ConflictExhaustedError(master_recipe_id, self.max_attempts)

        logger.info(f"Created version {version.version_number} ({version.id}) for recipe {master_recipe_id}")

        # Separate write: a failure here leaves a valid version that can be repointed later
        try:
            self.store.set_current_version(master_recipe_id, version.id)
        except LineageStoreError as e:
            logger.error(
                f"Version {version.id} created but recipe {master_recipe_id} was not repointed: {e}"
            )
            return AllocatedVersion(version=version, is_current=False)

        return AllocatedVersion(version=version)
