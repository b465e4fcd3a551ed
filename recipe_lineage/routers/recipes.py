"""Recipes and versions API router.

Endpoints:
- POST /api/recipes - Manual entry (recipe + v1)
- GET /api/recipes/{id} - Recipe with current version
- GET /api/recipes/{id}/versions - All versions, newest first
- GET /api/recipes/{id}/view - Version shown by the view toggle
- PATCH /api/recipes/{id}/active-version - Commit a version as current
- PUT /api/recipes/{id}/content - Direct edit along the lineage branch
- POST /api/recipes/{id}/apply-source - Adopt a linked source's extraction
- POST /api/recipes/{id}/fork - Copy into a forked recipe
- DELETE /api/recipes/{id}/versions/{version_id} - Delete a derived version
- GET /api/recipes/{id}/compare - Diff a version against a base
- POST /api/compare - Diff two raw ingredient/step sets
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..deps import get_store, get_owner_id
from ..schemas import (
    RecipeCreate, MasterRecipeOut, VersionOut, VersionViewOut,
    RecipeContentUpdate, ContentSaveOut, SetActiveVersionRequest, ApplySourceRequest,
    CompareRequest, CompareOut,
)
from ..services.diff_engine import compare_versions, get_top_diffs
from ..services.lineage_policy import UNSET
from ..services.lineage_store import SqlLineageStore
from ..services import recipe_versions

router = APIRouter()


def _recipe_out(store: SqlLineageStore, recipe_id: str) -> MasterRecipeOut:
    return MasterRecipeOut.model_validate(store.get_master_recipe(recipe_id))


def _save_out(result: recipe_versions.SaveResult) -> ContentSaveOut:
    return ContentSaveOut(
        version=VersionOut.model_validate(result.version),
        branch=result.branch.value,
        created_new_version=result.created_new_version,
    )


@router.post("/recipes", response_model=MasterRecipeOut, status_code=201)
def create_recipe(
    payload: RecipeCreate,
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    """Create a recipe from manually entered content."""
    recipe = recipe_versions.create_recipe(
        store,
        owner_id=owner_id,
        title=payload.title,
        description=payload.description,
        ingredients=payload.ingredients,
        steps=payload.steps,
    )
    return MasterRecipeOut.model_validate(recipe)


@router.get("/recipes/{recipe_id}", response_model=MasterRecipeOut)
def get_recipe(
    recipe_id: str,
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    recipe = recipe_versions.get_owned_recipe(store, recipe_id, owner_id)
    return MasterRecipeOut.model_validate(recipe)


@router.get("/recipes/{recipe_id}/versions", response_model=list[VersionOut])
def list_versions(
    recipe_id: str,
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    recipe = recipe_versions.get_owned_recipe(store, recipe_id, owner_id)
    return [VersionOut.model_validate(v) for v in store.list_versions(recipe.id)]


@router.get("/recipes/{recipe_id}/view", response_model=VersionViewOut)
def view_version(
    recipe_id: str,
    selected: Optional[int] = Query(None, ge=1, description="Version number picked in the toggle"),
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    """Resolve which version the toggle shows. Nothing is persisted."""
    recipe = recipe_versions.get_owned_recipe(store, recipe_id, owner_id)
    version, viewing_original = recipe_versions.view_version(store, recipe, selected)
    return VersionViewOut(
        version=VersionOut.model_validate(version) if version else None,
        is_viewing_original=viewing_original,
    )


@router.patch("/recipes/{recipe_id}/active-version", response_model=MasterRecipeOut)
def set_active_version(
    recipe_id: str,
    body: SetActiveVersionRequest,
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    """Switch the active version of a recipe."""
    recipe = recipe_versions.get_owned_recipe(store, recipe_id, owner_id)
    recipe_versions.make_active(store, recipe, body.version_id)
    return _recipe_out(store, recipe_id)


@router.put("/recipes/{recipe_id}/content", response_model=ContentSaveOut)
def update_content(
    recipe_id: str,
    payload: RecipeContentUpdate,
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    """Save edited ingredients/steps.

    Forked recipes overwrite v1; outsourced recipes get a new version.
    """
    recipe = recipe_versions.get_owned_recipe(store, recipe_id, owner_id)
    # Omitted keeps the existing attribution, explicit null clears it
    provided_source = (
        payload.based_on_source_id if "based_on_source_id" in payload.model_fields_set else UNSET
    )
    result = recipe_versions.save_content(
        store,
        recipe,
        payload.ingredients,
        payload.steps,
        mode="edit",
        change_notes=payload.change_notes,
        based_on_source_id=provided_source,
    )
    return _save_out(result)


@router.post("/recipes/{recipe_id}/apply-source", response_model=ContentSaveOut)
def apply_source(
    recipe_id: str,
    body: ApplySourceRequest,
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    recipe = recipe_versions.get_owned_recipe(store, recipe_id, owner_id)
    result = recipe_versions.apply_source(store, recipe, body.source_link_id)
    return _save_out(result)


@router.post("/recipes/{recipe_id}/fork", response_model=MasterRecipeOut, status_code=201)
def fork_recipe(
    recipe_id: str,
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    """Copy a recipe into the owner's cookbook as a single-version fork."""
    recipe = recipe_versions.get_owned_recipe(store, recipe_id, owner_id)
    fork = recipe_versions.fork_recipe(store, recipe, owner_id)
    return MasterRecipeOut.model_validate(fork)


@router.delete("/recipes/{recipe_id}/versions/{version_id}", status_code=204)
def delete_version(
    recipe_id: str,
    version_id: str,
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    recipe = recipe_versions.get_owned_recipe(store, recipe_id, owner_id)
    recipe_versions.delete_version(store, recipe, version_id)
    return None


@router.get("/recipes/{recipe_id}/compare", response_model=CompareOut)
def compare_recipe(
    recipe_id: str,
    version_id: Optional[str] = Query(None, description="Version to inspect (default: current)"),
    base_version_id: Optional[str] = Query(None, description="Compare against this version"),
    source_link_id: Optional[str] = Query(None, description="Compare against this source's extraction"),
    limit: int = Query(3, ge=0),
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    """What changed between a version and its base (default: v1)."""
    recipe = recipe_versions.get_owned_recipe(store, recipe_id, owner_id)
    result = recipe_versions.compare_recipe(
        store,
        recipe,
        version_id=version_id,
        base_version_id=base_version_id,
        source_link_id=source_link_id,
    )
    return CompareOut(result=result, top_diffs=get_top_diffs(result, limit))


@router.post("/compare", response_model=CompareOut)
def compare_sets(payload: CompareRequest):
    result = compare_versions(
        payload.original_ingredients,
        payload.original_steps,
        payload.current_ingredients,
        payload.current_steps,
        payload.version_learnings,
    )
    return CompareOut(result=result, top_diffs=get_top_diffs(result, payload.top_limit))
