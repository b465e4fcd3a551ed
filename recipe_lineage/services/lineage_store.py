"""
Lineage store accessor.

The core only depends on the LineageStore protocol: point reads by id,
inserts, and conditional updates that report whether a row changed.
SqlLineageStore is the SQLAlchemy implementation; each write commits on its
own so the version insert and the current-version repoint stay separate
writes.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, runtime_checkable

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import LineageStoreError, VersionNumberConflict
from ..models import MasterRecipe, RecipeVersion, SourceLink, CookSession

logger = logging.getLogger("lineage.store")

VERSION_UNIQUE_CONSTRAINT = "uq_recipe_versions_number"


@runtime_checkable
class LineageStore(Protocol):
    def get_master_recipe(self, master_recipe_id: str) -> Optional[MasterRecipe]: ...

    def insert_master_recipe(self, **fields: Any) -> MasterRecipe: ...

    def delete_master_recipe(self, master_recipe_id: str) -> None: ...

    def get_version(self, version_id: str) -> Optional[RecipeVersion]: ...

    def get_version_by_number(self, master_recipe_id: str, version_number: int) -> Optional[RecipeVersion]: ...

    def list_versions(self, master_recipe_id: str) -> list[RecipeVersion]: ...

    def get_max_version_number(self, master_recipe_id: str) -> Optional[int]: ...

    def insert_version(self, **fields: Any) -> RecipeVersion:
        """Insert a version row. Raises VersionNumberConflict on a duplicate number."""
        ...

    def update_version_content(self, version_id: str, **fields: Any) -> RecipeVersion: ...

    def delete_version(self, version_id: str) -> None: ...

    def get_session_version(self, session_id: str) -> Optional[RecipeVersion]:
        """Version created from a cook session, if one was written."""
        ...

    def set_current_version(self, master_recipe_id: str, version_id: str) -> None: ...

    def get_source_link(self, source_link_id: str) -> Optional[SourceLink]: ...

    def count_linked_sources(self, master_recipe_id: str) -> int: ...

    def transition_source_link(
        self,
        source_link_id: str,
        *,
        from_status: str,
        to_status: str,
        master_recipe_id: Optional[str] = None,
    ) -> bool: ...

    def get_cook_session(self, session_id: str) -> Optional[CookSession]: ...

    def insert_cook_session(self, **fields: Any) -> CookSession: ...

    def append_learnings(self, session_id: str, learnings: list[dict]) -> bool: ...

    def claim_cook_session(self, session_id: str) -> bool: ...

    def release_cook_session(self, session_id: str) -> None: ...


def _is_version_number_conflict(exc: IntegrityError) -> bool:
    orig = exc.orig
    if getattr(orig, "pgcode", None) == "23505":
        return True
    message = str(orig)
    return VERSION_UNIQUE_CONSTRAINT in message or "UNIQUE constraint failed" in message


class SqlLineageStore:
    """LineageStore backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def _fail(self, action: str, e: SQLAlchemyError) -> LineageStoreError:
        self.db.rollback()
        logger.error(f"Store write failed during {action}: {e}")
        return LineageStoreError(f"Failed to {action}")

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail(action, e) from e

    def _execute(self, statement, action: str):
        """Run a single UPDATE and commit it; any failure rolls back."""
        try:
            result = self.db.execute(statement)
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail(action, e) from e
        return result

    # --- Master recipes ---

    def get_master_recipe(self, master_recipe_id: str) -> Optional[MasterRecipe]:
        return self.db.get(MasterRecipe, master_recipe_id)

    def insert_master_recipe(self, **fields: Any) -> MasterRecipe:
        recipe = MasterRecipe(**fields)
        self.db.add(recipe)
        self._commit("insert master recipe")
        self.db.refresh(recipe)
        return recipe

    def delete_master_recipe(self, master_recipe_id: str) -> None:
        recipe = self.db.get(MasterRecipe, master_recipe_id)
        if recipe is None:
            return
        self.db.delete(recipe)
        self._commit("delete master recipe")

    # --- Versions ---

    def get_version(self, version_id: str) -> Optional[RecipeVersion]:
        return self.db.get(RecipeVersion, version_id)

    def get_version_by_number(self, master_recipe_id: str, version_number: int) -> Optional[RecipeVersion]:
        return self.db.scalar(
            select(RecipeVersion).where(
                RecipeVersion.master_recipe_id == master_recipe_id,
                RecipeVersion.version_number == version_number,
            )
        )

    def list_versions(self, master_recipe_id: str) -> list[RecipeVersion]:
        return list(self.db.scalars(
            select(RecipeVersion)
            .where(RecipeVersion.master_recipe_id == master_recipe_id)
            .order_by(RecipeVersion.version_number.desc())
        ))

    def get_max_version_number(self, master_recipe_id: str) -> Optional[int]:
        return self.db.scalar(
            select(func.max(RecipeVersion.version_number))
            .where(RecipeVersion.master_recipe_id == master_recipe_id)
        )

    def insert_version(self, **fields: Any) -> RecipeVersion:
        version = RecipeVersion(**fields)
        self.db.add(version)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if _is_version_number_conflict(e):
                raise VersionNumberConflict(fields["master_recipe_id"], fields["version_number"]) from e
            raise LineageStoreError(f"Failed to insert version: {e.orig}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LineageStoreError(f"Failed to insert version: {e}") from e
        self.db.refresh(version)
        return version

    def update_version_content(self, version_id: str, **fields: Any) -> RecipeVersion:
        version = self.db.get(RecipeVersion, version_id)
        if version is None:
            raise LineageStoreError(f"Version {version_id} vanished before update")
        for key, value in fields.items():
            setattr(version, key, value)
        self._commit("update version content")
        self.db.refresh(version)
        return version

    def delete_version(self, version_id: str) -> None:
        version = self.db.get(RecipeVersion, version_id)
        if version is None:
            return
        self.db.delete(version)
        self._commit("delete version")

    def get_session_version(self, session_id: str) -> Optional[RecipeVersion]:
        return self.db.scalar(
            select(RecipeVersion).where(RecipeVersion.created_from_session_id == session_id)
        )

    def set_current_version(self, master_recipe_id: str, version_id: str) -> None:
        self._execute(
            update(MasterRecipe)
            .where(MasterRecipe.id == master_recipe_id)
            .values(current_version_id=version_id),
            "set current version",
        )

    # --- Source links ---

    def get_source_link(self, source_link_id: str) -> Optional[SourceLink]:
        return self.db.get(SourceLink, source_link_id)

    def count_linked_sources(self, master_recipe_id: str) -> int:
        return self.db.scalar(
            select(func.count(SourceLink.id)).where(
                SourceLink.master_recipe_id == master_recipe_id,
                SourceLink.link_status == "linked",
            )
        ) or 0

    def transition_source_link(
        self,
        source_link_id: str,
        *,
        from_status: str,
        to_status: str,
        master_recipe_id: Optional[str] = None,
    ) -> bool:
        values: dict[str, Any] = {"link_status": to_status}
        if to_status == "linked":
            values["master_recipe_id"] = master_recipe_id
            values["linked_at"] = datetime.now(timezone.utc)

        result = self._execute(
            update(SourceLink)
            .where(SourceLink.id == source_link_id, SourceLink.link_status == from_status)
            .values(**values),
            "transition source link",
        )
        return result.rowcount == 1

    # --- Cook sessions ---

    def get_cook_session(self, session_id: str) -> Optional[CookSession]:
        return self.db.get(CookSession, session_id)

    def insert_cook_session(self, **fields: Any) -> CookSession:
        session = CookSession(**fields)
        self.db.add(session)
        self._commit("insert cook session")
        self.db.refresh(session)
        return session

    def append_learnings(self, session_id: str, learnings: list[dict]) -> bool:
        """Append learnings to an active session. False if the session is not active."""
        session = self.db.get(CookSession, session_id)
        if session is None or session.status != "active":
            return False
        # Reassign so the JSONB column is flagged dirty
        session.detected_learnings = [*(session.detected_learnings or []), *learnings]
        self._commit("append learnings")
        self.db.refresh(session)
        return True

    def claim_cook_session(self, session_id: str) -> bool:
        result = self._execute(
            update(CookSession)
            .where(CookSession.id == session_id, CookSession.status == "active")
            .values(status="finalized", finalized_at=datetime.now(timezone.utc)),
            "claim cook session",
        )
        return result.rowcount == 1

    def release_cook_session(self, session_id: str) -> None:
        self._execute(
            update(CookSession)
            .where(CookSession.id == session_id, CookSession.status == "finalized")
            .values(status="active", finalized_at=None),
            "release cook session",
        )
