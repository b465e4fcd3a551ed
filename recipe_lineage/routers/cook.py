"""Cook session router.

Endpoints:
- POST /api/cook/sessions - Start cooking a recipe (optionally from a source)
- POST /api/cook/sessions/{id}/learnings - Record detected learnings
- POST /api/cook/sessions/{id}/create-my-version - Fold learnings into a version

create-my-version requires an Idempotency-Key header; a retried request with
the same key replays the first response.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..deps import get_store, get_owner_id
from ..infra import idempotency
from ..schemas import (
    CookSessionCreate, CookSessionOut, LearningsAppend,
    CreateMyVersionRequest, CreateMyVersionOut,
)
from ..services.lineage_store import SqlLineageStore
from ..services import cook_sessions

router = APIRouter()
logger = logging.getLogger("lineage.cook")


@router.post("/cook/sessions", response_model=CookSessionOut, status_code=201)
def start_session(
    body: CookSessionCreate,
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    session = cook_sessions.open_session(
        store,
        owner_id=owner_id,
        master_recipe_id=body.master_recipe_id,
        version_id=body.version_id,
        source_link_id=body.source_link_id,
    )
    return CookSessionOut.model_validate(session)


@router.post("/cook/sessions/{session_id}/learnings", response_model=CookSessionOut)
def add_learnings(
    session_id: str,
    body: LearningsAppend,
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    session = cook_sessions.record_learnings(store, session_id, owner_id, body.learnings)
    return CookSessionOut.model_validate(session)


@router.post("/cook/sessions/{session_id}/create-my-version", response_model=CreateMyVersionOut)
async def create_my_version(
    session_id: str,
    request: Request,
    body: Optional[CreateMyVersionRequest] = None,
    store: SqlLineageStore = Depends(get_store),
    owner_id: str = Depends(get_owner_id),
):
    """Create "My Version" from the session's learnings."""
    claim = await idempotency.claim_key(request, owner_id=owner_id, route_key="cook_create_my_version")
    if isinstance(claim, JSONResponse):
        logger.info(f"Replaying create-my-version response for session {session_id}")
        return claim

    try:
        result = cook_sessions.finalize_session(
            store,
            session_id,
            owner_id,
            source_link_id=body.source_link_id if body else None,
        )
        resp = CreateMyVersionOut(
            version_id=result.version_id,
            version_number=result.version_number,
            branch=result.branch.value,
            changes_applied=result.changes_applied,
            change_notes=result.change_notes,
            message=result.message,
        )
        await idempotency.store_response(claim, status=200, body=resp.model_dump(mode="json"))
        return resp
    except Exception:
        await idempotency.release(claim)
        raise
