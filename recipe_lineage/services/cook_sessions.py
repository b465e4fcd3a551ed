"""Cook sessions and their finalization into a recipe version.

Finalizing a session:
1. claims it (active -> finalized) so its learnings are consumed once
2. resolves the base content (linked source extraction, else current version)
3. applies the learnings in order
4. writes along the lineage branch (fork: overwrite v1, outsourced: new version)

If anything after the claim fails before a version carrying the session id
is written, the claim is released so the session can be finalized again.
Once that version exists the claim is kept, even if a later step fails.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import NotFoundError, ValidationError, SessionAlreadyFinalizedError
from ..models import CookSession, MasterRecipe
from ..schemas import Learning, Ingredient, Step
from .learning_applicator import apply_learnings, format_change_notes, generate_version_title
from .lineage_policy import UNSET, LineageBranch
from .lineage_store import LineageStore
from .recipe_versions import get_owned_recipe, get_recipe_version, get_linked_source, save_content, source_content, version_content
from .version_allocator import VersionAllocator

logger = logging.getLogger("lineage.cook")


@dataclass
class FinalizeResult:
    version_id: str
    version_number: int
    branch: LineageBranch
    changes_applied: int
    change_notes: str

    @property
    def message(self) -> str:
        if self.branch is LineageBranch.FORKED:
            return f"Updated your recipe with {self.changes_applied} modifications"
        return f"Created My Version (v{self.version_number}) with {self.changes_applied} modifications"


def get_owned_session(store: LineageStore, session_id: str, owner_id: str) -> CookSession:
    session = store.get_cook_session(session_id)
    if session is None or session.owner_id != owner_id:
        raise NotFoundError("Cook session", session_id, detail="Session not found or access denied")
    return session


def open_session(
    store: LineageStore,
    *,
    owner_id: str,
    master_recipe_id: str,
    version_id: Optional[str] = None,
    source_link_id: Optional[str] = None,
) -> CookSession:
    recipe = get_owned_recipe(store, master_recipe_id, owner_id)
    if version_id:
        get_recipe_version(store, recipe, version_id)
    if source_link_id:
        get_linked_source(store, recipe, source_link_id)

    session = store.insert_cook_session(
        owner_id=owner_id,
        master_recipe_id=recipe.id,
        version_id=version_id or recipe.current_version_id,
        source_link_id=source_link_id,
        status="active",
        detected_learnings=[],
    )
    logger.info(f"Opened cook session {session.id} for recipe {recipe.id}")
    return session


def record_learnings(store: LineageStore, session_id: str, owner_id: str, learnings: list[Learning]) -> CookSession:
    get_owned_session(store, session_id, owner_id)
    rows = [l.model_dump(mode="json") for l in learnings]
    if not store.append_learnings(session_id, rows):
        raise SessionAlreadyFinalizedError(f"Cook session {session_id} is already finalized")
    return store.get_cook_session(session_id)


def _resolve_base(
    store: LineageStore,
    recipe: MasterRecipe,
    session: CookSession,
    requested_source_link_id: Optional[str],
) -> tuple[list[Ingredient], list[Step], Optional[str]]:
    """Base content plus the source it came from (None if none was used)."""
    ingredients: list[Ingredient] = []
    steps: list[Step] = []
    source_id: Optional[str] = None

    if requested_source_link_id:
        # Explicitly requested: must exist and belong to this recipe
        link = get_linked_source(store, recipe, requested_source_link_id)
        ingredients, steps = source_content(link)
        source_id = link.id
    elif session.source_link_id:
        link = store.get_source_link(session.source_link_id)
        if link is None or link.master_recipe_id != recipe.id:
            logger.warning(
                f"Source link {session.source_link_id} not found or doesn't belong to recipe {recipe.id}"
            )
        else:
            ingredients, steps = source_content(link)
            source_id = link.id

    # Fill whichever part the source lacked from the current version
    if (not ingredients or not steps) and recipe.current_version_id:
        current = store.get_version(recipe.current_version_id)
        if current is not None:
            current_ingredients, current_steps = version_content(current)
            ingredients = ingredients or current_ingredients
            steps = steps or current_steps

    return ingredients, steps, source_id


def finalize_session(
    store: LineageStore,
    session_id: str,
    owner_id: str,
    *,
    source_link_id: Optional[str] = None,
    allocator: Optional[VersionAllocator] = None,
) -> FinalizeResult:
    """Fold a session's learnings into a new (or, for forks, updated) version.

    A session whose learnings all turn out to be structural no-ops still
    produces a version carrying their notes.
    """
    session = get_owned_session(store, session_id, owner_id)
    if session.status != "active":
        raise SessionAlreadyFinalizedError(f"Cook session {session_id} is already finalized")

    learnings = [Learning.model_validate(l) for l in (session.detected_learnings or [])]
    if not learnings:
        raise ValidationError("No learnings found in session")

    recipe = get_owned_recipe(store, session.master_recipe_id, owner_id)
    cooked_version_id = session.version_id

    if not store.claim_cook_session(session.id):
        raise SessionAlreadyFinalizedError(f"Cook session {session_id} is already finalized")

    try:
        base_ingredients, base_steps, source_id = _resolve_base(store, recipe, session, source_link_id)
        applied = apply_learnings(base_ingredients, base_steps, learnings)
        notes = format_change_notes(applied.change_notes)

        saved = save_content(
            store,
            recipe,
            applied.ingredients,
            applied.steps,
            mode="cook_session",
            change_notes=notes,
            based_on_source_id=source_id if source_id else UNSET,
            created_from_session_id=session.id,
            created_from_title=generate_version_title(learnings),
            parent_version_id=cooked_version_id,
            allocator=allocator,
        )
    except Exception:
        written = store.get_session_version(session_id)
        if written is not None:
            # Learnings are already applied; they stay consumed
            logger.error(
                f"Finalizing session {session_id} failed after writing version {written.id}, keeping claim"
            )
        else:
            logger.warning(f"Finalizing session {session_id} failed, releasing claim")
            store.release_cook_session(session_id)
        raise

    logger.info(
        f"Session {session_id} finalized into version {saved.version.version_number} "
        f"({saved.branch.value}, {len(applied.change_notes)} learnings)"
    )
    return FinalizeResult(
        version_id=saved.version.id,
        version_number=saved.version.version_number,
        branch=saved.branch,
        changes_applied=len(applied.change_notes),
        change_notes=notes,
    )
