"""Source link confirmation router.

Endpoints:
- POST /api/source-links/{id}/confirm - link_existing | create_new | reject
"""

from fastapi import APIRouter, Depends

from ..deps import get_store, get_owner_id
from ..schemas import ConfirmSourceLinkRequest, ConfirmSourceLinkOut
from ..services.lineage_store import SqlLineageStore
from ..services.source_links import confirm_source_link

router = APIRouter()


@router.post("/source-links/{source_link_id}/confirm", response_model=ConfirmSourceLinkOut)
def confirm(
    source_link_id: str,
    body: ConfirmSourceLinkRequest,
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    result = confirm_source_link(
        store,
        source_link_id,
        body.action,
        owner_id,
        master_recipe_id=body.master_recipe_id,
    )
    return ConfirmSourceLinkOut(
        action=result.action,
        source_link_id=result.source_link_id,
        master_recipe_id=result.master_recipe_id,
        version_id=result.version_id,
        message=result.message,
        source_count=result.source_count,
    )
