import pytest

from recipe_lineage.errors import (
    NotFoundError, ValidationError, SessionAlreadyFinalizedError, ConflictExhaustedError, LineageStoreError,
)
from recipe_lineage.schemas import Learning
from recipe_lineage.services.cook_sessions import open_session, record_learnings, finalize_session
from recipe_lineage.services.lineage_policy import LineageBranch
from recipe_lineage.services.lineage_store import SqlLineageStore
from recipe_lineage.services.version_allocator import VersionAllocator

from conftest import FailingUpdateSession


PANCETTA = Learning(
    type="substitution", original="guanciale", modification="pancetta",
    context="Used pancetta instead of guanciale",
)
PEPPER = Learning(type="addition", modification="black pepper", context="Added black pepper at the end")
LONGER_BOIL = Learning(type="timing", step_number=1, modification="12 minutes", context="Pasta needed 12 minutes")


def session_with(store, recipe, *learnings, **kw):
    session = open_session(store, owner_id="local", master_recipe_id=recipe.id, **kw)
    if learnings:
        record_learnings(store, session.id, "local", list(learnings))
    return session


def test_open_session_defaults_to_current_version(store, outsourced_recipe):
    session = open_session(store, owner_id="local", master_recipe_id=outsourced_recipe.id)
    assert session.status == "active"
    assert session.version_id == outsourced_recipe.current_version_id
    assert session.detected_learnings == []


def test_open_session_for_foreign_recipe(store, outsourced_recipe):
    with pytest.raises(NotFoundError):
        open_session(store, owner_id="someone-else", master_recipe_id=outsourced_recipe.id)


def test_record_learnings_appends(store, outsourced_recipe):
    session = session_with(store, outsourced_recipe, PANCETTA)
    updated = record_learnings(store, session.id, "local", [PEPPER])
    assert [l["type"] for l in updated.detected_learnings] == ["substitution", "addition"]


def test_finalize_outsourced_creates_new_version(store, outsourced_recipe):
    session = session_with(store, outsourced_recipe, PANCETTA, PEPPER, LONGER_BOIL)
    v1_id = outsourced_recipe.current_version_id

    result = finalize_session(store, session.id, "local")

    assert result.branch is LineageBranch.OUTSOURCED
    assert result.version_number == 2
    assert result.changes_applied == 3
    assert result.message == "Created My Version (v2) with 3 modifications"
    assert result.change_notes.splitlines() == [
        "Created from cooking session:",
        "Used pancetta instead of guanciale",
        "Added black pepper at the end",
        "Pasta needed 12 minutes",
    ]

    version = store.get_version(result.version_id)
    assert version.created_from_mode == "cook_session"
    assert version.created_from_session_id == session.id
    assert version.created_from_title == "Used pancetta, Added black pepper, Adjusted timing"
    assert version.parent_version_id == v1_id
    items = [i["item"] for i in version.ingredients]
    assert items == ["spaghetti", "pancetta", "eggs", "pecorino", "black pepper"]
    assert version.steps[0]["duration_minutes"] == 12

    assert store.get_master_recipe(outsourced_recipe.id).current_version_id == version.id
    assert store.get_cook_session(session.id).status == "finalized"


def test_finalize_forked_overwrites_v1(store, forked_recipe):
    session = session_with(store, forked_recipe, PANCETTA)
    result = finalize_session(store, session.id, "local")

    assert result.branch is LineageBranch.FORKED
    assert result.version_number == 1
    assert result.version_id == forked_recipe.current_version_id
    assert result.message == "Updated your recipe with 1 modifications"
    versions = store.list_versions(forked_recipe.id)
    assert len(versions) == 1
    assert versions[0].ingredients[1]["item"] == "pancetta"
    assert versions[0].created_from_session_id == session.id


def test_finalize_twice_fails(store, outsourced_recipe):
    session = session_with(store, outsourced_recipe, PANCETTA)
    finalize_session(store, session.id, "local")
    with pytest.raises(SessionAlreadyFinalizedError):
        finalize_session(store, session.id, "local")
    with pytest.raises(SessionAlreadyFinalizedError):
        record_learnings(store, session.id, "local", [PEPPER])
    assert len(store.list_versions(outsourced_recipe.id)) == 2


def test_finalize_without_learnings(store, outsourced_recipe):
    session = session_with(store, outsourced_recipe)
    with pytest.raises(ValidationError):
        finalize_session(store, session.id, "local")
    assert store.get_cook_session(session.id).status == "active"


def test_noop_learnings_still_create_version(store, outsourced_recipe):
    missing = Learning(type="substitution", original="cream", modification="milk", context="No cream this time")
    session = session_with(store, outsourced_recipe, missing)
    result = finalize_session(store, session.id, "local")
    assert result.version_number == 2
    assert result.changes_applied == 1


def test_finalize_from_linked_source(store, db_session, outsourced_recipe, pending_source_link):
    pending_source_link.master_recipe_id = outsourced_recipe.id
    pending_source_link.link_status = "linked"
    db_session.commit()

    session = session_with(store, outsourced_recipe, PANCETTA, source_link_id=pending_source_link.id)
    result = finalize_session(store, session.id, "local")

    version = store.get_version(result.version_id)
    assert version.based_on_source_id == pending_source_link.id
    assert [i["item"] for i in version.ingredients] == ["spaghetti", "pancetta", "egg yolks"]


def test_requested_source_must_belong_to_recipe(store, outsourced_recipe, pending_source_link):
    session = session_with(store, outsourced_recipe, PANCETTA)
    with pytest.raises(NotFoundError):
        finalize_session(store, session.id, "local", source_link_id=pending_source_link.id)
    # Claim released
    assert store.get_cook_session(session.id).status == "active"


def test_stale_session_source_falls_back_to_current(store, db_session, outsourced_recipe, pending_source_link):
    pending_source_link.master_recipe_id = outsourced_recipe.id
    db_session.commit()
    session = session_with(store, outsourced_recipe, PANCETTA, source_link_id=pending_source_link.id)

    # Source link moved to another recipe after the session started
    pending_source_link.master_recipe_id = None
    db_session.commit()

    result = finalize_session(store, session.id, "local")
    version = store.get_version(result.version_id)
    assert [i["item"] for i in version.ingredients][:2] == ["spaghetti", "pancetta"]
    assert version.based_on_source_id is None


class AlwaysConflictingStore(SqlLineageStore):
    def get_max_version_number(self, master_recipe_id):
        return 0


def test_allocation_failure_releases_claim(db_session, outsourced_recipe):
    store = AlwaysConflictingStore(db_session)
    session = session_with(store, outsourced_recipe, PANCETTA)
    with pytest.raises(ConflictExhaustedError):
        finalize_session(store, session.id, "local", allocator=VersionAllocator(store, max_attempts=2))
    assert store.get_cook_session(session.id).status == "active"

    # Retry with a healthy store succeeds
    healthy = SqlLineageStore(db_session)
    result = finalize_session(healthy, session.id, "local")
    assert result.version_number == 2


def test_repoint_failure_still_consumes_session(db_session, outsourced_recipe):
    v1_id = outsourced_recipe.current_version_id
    session = session_with(SqlLineageStore(db_session), outsourced_recipe, PANCETTA)
    store = SqlLineageStore(FailingUpdateSession(db_session, "master_recipes"))

    result = finalize_session(store, session.id, "local")

    assert result.version_number == 2
    assert store.get_cook_session(session.id).status == "finalized"
    assert store.get_master_recipe(outsourced_recipe.id).current_version_id == v1_id

    with pytest.raises(SessionAlreadyFinalizedError):
        finalize_session(SqlLineageStore(db_session), session.id, "local")
    from_session = [v for v in store.list_versions(outsourced_recipe.id) if v.created_from_session_id == session.id]
    assert len(from_session) == 1


class FailsAfterInsertStore(SqlLineageStore):
    """The version row is written, then the write reports an error."""

    def insert_version(self, **fields):
        super().insert_version(**fields)
        raise LineageStoreError("Failed to insert version: connection lost")


def test_failure_after_version_written_keeps_claim(db_session, outsourced_recipe):
    store = FailsAfterInsertStore(db_session)
    session = session_with(store, outsourced_recipe, PANCETTA)

    with pytest.raises(LineageStoreError):
        finalize_session(store, session.id, "local")
    assert store.get_cook_session(session.id).status == "finalized"

    healthy = SqlLineageStore(db_session)
    with pytest.raises(SessionAlreadyFinalizedError):
        finalize_session(healthy, session.id, "local")
    assert healthy.get_session_version(session.id).version_number == 2
    assert len(healthy.list_versions(outsourced_recipe.id)) == 2


def test_claim_failure_leaves_session_active(db_session, outsourced_recipe):
    session = session_with(SqlLineageStore(db_session), outsourced_recipe, PANCETTA)
    store = SqlLineageStore(FailingUpdateSession(db_session, "cook_sessions"))

    with pytest.raises(LineageStoreError):
        finalize_session(store, session.id, "local")
    assert store.get_cook_session(session.id).status == "active"
    assert len(store.list_versions(outsourced_recipe.id)) == 1
