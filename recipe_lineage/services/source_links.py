"""Confirmation of pending source links (imported extractions).

Each action is a conditional update guarded on link_status == "pending",
so only one confirmer can move a link out of pending. Rejected links are
terminal.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import NotFoundError, ValidationError, LineageStoreError
from ..models import SourceLink
from .lineage_store import LineageStore
from .recipe_versions import create_recipe, get_owned_recipe, source_content

logger = logging.getLogger("lineage.sources")

IMPORT_CHANGE_NOTES = "Initial import from video"


@dataclass
class ConfirmResult:
    action: str  # linked_existing | created_new | rejected
    source_link_id: str
    master_recipe_id: Optional[str] = None
    version_id: Optional[str] = None
    message: str = ""
    source_count: Optional[int] = None


def _get_pending_link(store: LineageStore, source_link_id: str, owner_id: str) -> SourceLink:
    link = store.get_source_link(source_link_id)
    if link is None or link.owner_id != owner_id or link.link_status != "pending":
        raise NotFoundError("Source link", source_link_id, detail="Source link not found or already processed")
    return link


def _transition(store: LineageStore, link: SourceLink, to_status: str, master_recipe_id: Optional[str] = None) -> None:
    moved = store.transition_source_link(
        link.id, from_status="pending", to_status=to_status, master_recipe_id=master_recipe_id
    )
    if not moved:
        # Another confirmer won between our read and the update
        raise NotFoundError("Source link", link.id, detail="Source link not found or already processed")


def reject_source_link(store: LineageStore, source_link_id: str, owner_id: str) -> ConfirmResult:
    link = _get_pending_link(store, source_link_id, owner_id)
    _transition(store, link, "rejected")
    logger.info(f"Rejected source link {link.id}")
    return ConfirmResult(
        action="rejected",
        source_link_id=link.id,
        message="Source link has been rejected",
    )


def link_to_existing(store: LineageStore, source_link_id: str, master_recipe_id: str, owner_id: str) -> ConfirmResult:
    link = _get_pending_link(store, source_link_id, owner_id)
    recipe = get_owned_recipe(store, master_recipe_id, owner_id)
    _transition(store, link, "linked", master_recipe_id=recipe.id)
    # The link just moved to linked, so at least one source exists
    source_count = store.count_linked_sources(recipe.id) or 1
    logger.info(f"Linked source {link.id} to recipe {recipe.id} ({source_count} sources)")
    return ConfirmResult(
        action="linked_existing",
        source_link_id=link.id,
        master_recipe_id=recipe.id,
        message=f'Added as a new source to "{recipe.title}"',
        source_count=source_count,
    )


def create_from_source(store: LineageStore, source_link_id: str, owner_id: str) -> ConfirmResult:
    """Create a new recipe whose v1 is the link's extraction, then link it."""
    link = _get_pending_link(store, source_link_id, owner_id)
    ingredients, steps = source_content(link)
    title = link.extracted_title or "Imported recipe"

    recipe = create_recipe(
        store,
        owner_id=owner_id,
        title=title,
        description=link.extracted_description,
        ingredients=ingredients,
        steps=steps,
        based_on_source_id=link.id,
        change_notes=IMPORT_CHANGE_NOTES,
    )

    try:
        _transition(store, link, "linked", master_recipe_id=recipe.id)
    except (NotFoundError, LineageStoreError):
        logger.warning(f"Source link {link.id} was processed concurrently, removing recipe {recipe.id}")
        store.delete_master_recipe(recipe.id)
        raise

    logger.info(f"Created recipe {recipe.id} from source link {link.id}")
    return ConfirmResult(
        action="created_new",
        source_link_id=link.id,
        master_recipe_id=recipe.id,
        version_id=recipe.current_version_id,
        message=f'Created new recipe "{title}"',
    )


def confirm_source_link(
    store: LineageStore,
    source_link_id: str,
    action: str,
    owner_id: str,
    master_recipe_id: Optional[str] = None,
) -> ConfirmResult:
    if action == "reject":
        return reject_source_link(store, source_link_id, owner_id)
    if action == "link_existing":
        if not master_recipe_id:
            raise ValidationError("master_recipe_id is required when linking to existing recipe")
        return link_to_existing(store, source_link_id, master_recipe_id, owner_id)
    if action == "create_new":
        return create_from_source(store, source_link_id, owner_id)
    raise ValidationError(f"Invalid action: {action}")
