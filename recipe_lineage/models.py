"""SQLAlchemy ORM models for recipe lineage.

Tables:
- master_recipes: Stable recipe identity owned by a user
- recipe_versions: Numbered snapshots of ingredients/steps (unique per recipe)
- recipe_source_links: Externally extracted recipe bodies (e.g. an imported video)
- cook_sessions: Session-scoped learnings waiting to be folded into a version
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Text,
    Integer,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import JSONB

from .db import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


class MasterRecipe(Base):
    """Stable identity for a recipe in a user's cookbook.

    forked_from_id is set iff the recipe was copied from another recipe
    rather than imported. Forks only ever have version 1.
    """
    __tablename__ = "master_recipes"
    __table_args__ = (
        Index("ix_master_recipes_owner_id", "owner_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    forked_from_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("master_recipes.id", ondelete="SET NULL"), nullable=True
    )
    # Pointer to the active version (for deterministic display)
    current_version_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("recipe_versions.id", ondelete="SET NULL", use_alter=True),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    versions: Mapped[list["RecipeVersion"]] = relationship(
        "RecipeVersion", back_populates="master_recipe", foreign_keys="[RecipeVersion.master_recipe_id]",
        cascade="all, delete-orphan", order_by="RecipeVersion.version_number"
    )
    current_version: Mapped[Optional["RecipeVersion"]] = relationship(
        "RecipeVersion", foreign_keys="[MasterRecipe.current_version_id]", post_update=True
    )

    @property
    def is_forked(self) -> bool:
        return self.forked_from_id is not None


class RecipeVersion(Base):
    """Numbered snapshot of a recipe. Immutable except a forked recipe's v1."""
    __tablename__ = "recipe_versions"
    __table_args__ = (
        Index("ix_recipe_versions_master_recipe_id", "master_recipe_id"),
        UniqueConstraint("master_recipe_id", "version_number", name="uq_recipe_versions_number"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    master_recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("master_recipes.id", ondelete="CASCADE"), nullable=False
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)

    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    ingredients: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)
    steps: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)
    change_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Lineage
    parent_version_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("recipe_versions.id", ondelete="SET NULL"), nullable=True
    )
    based_on_source_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("recipe_source_links.id", ondelete="SET NULL"), nullable=True
    )
    created_from_mode: Mapped[str] = mapped_column(String(20), nullable=False, default="import")  # import | edit | cook_session | source_apply
    created_from_session_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_from_title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    master_recipe: Mapped["MasterRecipe"] = relationship(
        "MasterRecipe", back_populates="versions", foreign_keys=[master_recipe_id]
    )


class SourceLink(Base):
    """One externally extracted recipe body. Extracted content is never mutated."""
    __tablename__ = "recipe_source_links"
    __table_args__ = (
        Index("ix_recipe_source_links_owner_id", "owner_id"),
        Index("ix_recipe_source_links_master_recipe_id", "master_recipe_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    master_recipe_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("master_recipes.id", ondelete="SET NULL"), nullable=True
    )
    link_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending | linked | rejected

    extracted_title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    extracted_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extracted_ingredients: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)
    extracted_steps: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)

    # Creator/platform metadata
    source_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    source_platform: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    source_creator: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    linked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class CookSession(Base):
    """Cook session carrying externally detected learnings until finalized."""
    __tablename__ = "cook_sessions"
    __table_args__ = (
        Index("ix_cook_sessions_master_recipe_id", "master_recipe_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    master_recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("master_recipes.id", ondelete="CASCADE"), nullable=False
    )
    # Version that was actually cooked
    version_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("recipe_versions.id", ondelete="SET NULL"), nullable=True
    )
    source_link_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("recipe_source_links.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # active | finalized
    detected_learnings: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
