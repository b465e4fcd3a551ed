"""Recipe and version operations built on the lineage policy.

Every write goes through the lineage branch check first: forked recipes
overwrite v1 in place, outsourced recipes allocate a new version.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..errors import NotFoundError, VersionDeleteError, LineageStoreError
from ..models import MasterRecipe, RecipeVersion, SourceLink
from ..schemas import Ingredient, Step, CreationMode, CompareResult
from .diff_engine import compare_versions
from .lineage_policy import UNSET, LineageBranch, lineage_branch, resolve_based_on_source_id, derive_current_version, is_viewing_original
from .lineage_store import LineageStore
from .version_allocator import VersionAllocator, VersionMetadata, ensure_content, dump_content

logger = logging.getLogger("lineage.versions")

IMPORT_CHANGE_NOTES = "Initial import"


@dataclass
class SaveResult:
    version: RecipeVersion
    branch: LineageBranch
    created_new_version: bool


def version_content(version: RecipeVersion) -> tuple[list[Ingredient], list[Step]]:
    return (
        [Ingredient.model_validate(i) for i in (version.ingredients or [])],
        [Step.model_validate(s) for s in (version.steps or [])],
    )


def source_content(link: SourceLink) -> tuple[list[Ingredient], list[Step]]:
    return (
        [Ingredient.model_validate(i) for i in (link.extracted_ingredients or [])],
        [Step.model_validate(s) for s in (link.extracted_steps or [])],
    )


def get_owned_recipe(store: LineageStore, master_recipe_id: str, owner_id: str) -> MasterRecipe:
    """Load a recipe; another owner's recipe is reported exactly like a missing one."""
    recipe = store.get_master_recipe(master_recipe_id)
    if recipe is None or recipe.owner_id != owner_id:
        raise NotFoundError("Master recipe", master_recipe_id)
    return recipe


def get_recipe_version(store: LineageStore, recipe: MasterRecipe, version_id: str) -> RecipeVersion:
    version = store.get_version(version_id)
    if version is None or version.master_recipe_id != recipe.id:
        raise NotFoundError("Version", version_id, detail="Version not found for this recipe")
    return version


def get_linked_source(store: LineageStore, recipe: MasterRecipe, source_link_id: str) -> SourceLink:
    link = store.get_source_link(source_link_id)
    if link is None or link.master_recipe_id != recipe.id:
        raise NotFoundError("Source link", source_link_id, detail="Source link not found for this recipe")
    return link


def create_recipe(
    store: LineageStore,
    *,
    owner_id: str,
    title: str,
    ingredients: Sequence[Ingredient],
    steps: Sequence[Step],
    description: Optional[str] = None,
    forked_from_id: Optional[str] = None,
    based_on_source_id: Optional[str] = None,
    change_notes: Optional[str] = IMPORT_CHANGE_NOTES,
) -> MasterRecipe:
    """Create a MasterRecipe with its v1 and point the recipe at it."""
    ensure_content(ingredients, steps)

    recipe = store.insert_master_recipe(
        owner_id=owner_id,
        title=title,
        description=description,
        forked_from_id=forked_from_id,
    )

    ingredient_rows, step_rows = dump_content(ingredients, steps)
    try:
        version = store.insert_version(
            master_recipe_id=recipe.id,
            version_number=1,
            title=title,
            ingredients=ingredient_rows,
            steps=step_rows,
            change_notes=change_notes,
            based_on_source_id=based_on_source_id,
            created_from_mode="import",
            created_from_title="Original",
        )
    except LineageStoreError:
        logger.error(f"Failed to create v1 for recipe {recipe.id}, removing recipe")
        store.delete_master_recipe(recipe.id)
        raise

    store.set_current_version(recipe.id, version.id)
    logger.info(f"Created recipe {recipe.id} with v1 {version.id}")
    return store.get_master_recipe(recipe.id)


def save_content(
    store: LineageStore,
    recipe: MasterRecipe,
    ingredients: Sequence[Ingredient],
    steps: Sequence[Step],
    *,
    mode: CreationMode = "edit",
    change_notes: Optional[str] = None,
    based_on_source_id=UNSET,
    created_from_session_id: Optional[str] = None,
    created_from_title: Optional[str] = None,
    parent_version_id: Optional[str] = None,
    allocator: Optional[VersionAllocator] = None,
) -> SaveResult:
    """Persist new content for a recipe along its lineage branch.

    based_on_source_id left as UNSET keeps the existing attribution (current
    version, then v1); any explicit value, None included, wins. A fork's v1
    never carries a source attribution.
    """
    ensure_content(ingredients, steps)

    original = store.get_version_by_number(recipe.id, 1)
    current = store.get_version(recipe.current_version_id) if recipe.current_version_id else None

    branch = lineage_branch(recipe)
    if branch is LineageBranch.FORKED:
        if original is None:
            raise NotFoundError("Version", detail=f"Forked recipe {recipe.id} has no version 1")
        if based_on_source_id:
            logger.info(f"Ignoring source {based_on_source_id} for forked recipe {recipe.id}")
        ingredient_rows, step_rows = dump_content(ingredients, steps)
        fields = {
            "ingredients": ingredient_rows,
            "steps": step_rows,
            "based_on_source_id": None,
        }
        if change_notes is not None:
            fields["change_notes"] = change_notes
        if created_from_session_id is not None:
            fields["created_from_session_id"] = created_from_session_id
        version = store.update_version_content(original.id, **fields)
        logger.info(f"Overwrote v1 of forked recipe {recipe.id} ({mode})")
        return SaveResult(version=version, branch=branch, created_new_version=False)

    source_id = resolve_based_on_source_id(
        based_on_source_id,
        current_version_source_id=current.based_on_source_id if current else None,
        original_version_source_id=original.based_on_source_id if original else None,
    )

    allocator = allocator or VersionAllocator(store)
    allocated = allocator.create_version(
        recipe.id,
        ingredients,
        steps,
        VersionMetadata(
            mode=mode,
            change_notes=change_notes,
            parent_version_id=parent_version_id or (current.id if current else None),
            based_on_source_id=source_id,
            created_from_session_id=created_from_session_id,
            created_from_title=created_from_title,
        ),
    )
    return SaveResult(version=allocated.version, branch=branch, created_new_version=True)


def apply_source(
    store: LineageStore,
    recipe: MasterRecipe,
    source_link_id: str,
    allocator: Optional[VersionAllocator] = None,
) -> SaveResult:
    """Adopt a linked source's extraction as the recipe's content."""
    link = get_linked_source(store, recipe, source_link_id)
    ingredients, steps = source_content(link)
    creator = f" by {link.source_creator}" if link.source_creator else ""
    return save_content(
        store,
        recipe,
        ingredients,
        steps,
        mode="source_apply",
        change_notes=f"Applied source{creator}",
        based_on_source_id=link.id,
        allocator=allocator,
    )


def fork_recipe(store: LineageStore, source_recipe: MasterRecipe, owner_id: str) -> MasterRecipe:
    """Copy a recipe's current content into a new forked recipe with a single v1."""
    if not source_recipe.current_version_id:
        raise NotFoundError("Version", detail=f"Recipe {source_recipe.id} has no current version")
    current = store.get_version(source_recipe.current_version_id)
    if current is None:
        raise NotFoundError("Version", source_recipe.current_version_id)
    ingredients, steps = version_content(current)
    return create_recipe(
        store,
        owner_id=owner_id,
        title=f"{source_recipe.title} (Copy)",
        description=source_recipe.description,
        ingredients=ingredients,
        steps=steps,
        forked_from_id=source_recipe.id,
        change_notes=f"Copied from {source_recipe.title}",
    )


def make_active(store: LineageStore, recipe: MasterRecipe, version_id: str) -> RecipeVersion:
    version = get_recipe_version(store, recipe, version_id)
    store.set_current_version(recipe.id, version.id)
    return version


def delete_version(store: LineageStore, recipe: MasterRecipe, version_id: str) -> None:
    """Delete a derived version. Remaining versions keep their numbers."""
    version = get_recipe_version(store, recipe, version_id)
    versions = store.list_versions(recipe.id)

    if len(versions) <= 1:
        raise VersionDeleteError("You can't delete the only version of this recipe.")
    if recipe.current_version_id == version.id:
        raise VersionDeleteError(
            "You can't delete the active version. Please make another version active first."
        )
    if version.version_number == 1:
        raise VersionDeleteError(
            "You can't delete the original import. Only versions created from cooking or editing can be deleted."
        )

    store.delete_version(version.id)
    logger.info(f"Deleted version {version.version_number} ({version.id}) of recipe {recipe.id}")


def view_version(
    store: LineageStore, recipe: MasterRecipe, selected_version_number: Optional[int]
) -> tuple[Optional[RecipeVersion], bool]:
    versions = store.list_versions(recipe.id)
    version = derive_current_version(selected_version_number, versions)
    return version, is_viewing_original(
        selected_version_number, version.version_number if version else None
    )


def compare_recipe(
    store: LineageStore,
    recipe: MasterRecipe,
    *,
    version_id: Optional[str] = None,
    base_version_id: Optional[str] = None,
    source_link_id: Optional[str] = None,
) -> CompareResult:
    """Diff a version (default: current) against a source extraction, another version, or v1."""
    target_id = version_id or recipe.current_version_id
    if not target_id:
        raise NotFoundError("Version", detail=f"Recipe {recipe.id} has no current version")
    target = get_recipe_version(store, recipe, target_id)

    if source_link_id:
        base_ingredients, base_steps = source_content(get_linked_source(store, recipe, source_link_id))
    else:
        if base_version_id:
            base = get_recipe_version(store, recipe, base_version_id)
        else:
            base = store.get_version_by_number(recipe.id, 1)
            if base is None:
                raise NotFoundError("Version", detail=f"Recipe {recipe.id} has no version 1")
        base_ingredients, base_steps = version_content(base)

    current_ingredients, current_steps = version_content(target)
    return compare_versions(base_ingredients, base_steps, current_ingredients, current_steps)
