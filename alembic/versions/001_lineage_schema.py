"""lineage_schema

Revision ID: 001_lineage_schema
Revises:
Create Date: 2026-10-17 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001_lineage_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_COLUMN = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    op.create_table(
        'master_recipes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('forked_from_id', sa.String(36), sa.ForeignKey('master_recipes.id', ondelete='SET NULL'), nullable=True),
        sa.Column('current_version_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_master_recipes_owner_id', 'master_recipes', ['owner_id'])

    op.create_table(
        'recipe_source_links',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('master_recipe_id', sa.String(36), sa.ForeignKey('master_recipes.id', ondelete='SET NULL'), nullable=True),
        sa.Column('link_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('extracted_title', sa.String(200), nullable=True),
        sa.Column('extracted_description', sa.Text, nullable=True),
        sa.Column('extracted_ingredients', JSON_COLUMN, nullable=False),
        sa.Column('extracted_steps', JSON_COLUMN, nullable=False),
        sa.Column('source_url', sa.String(500), nullable=True),
        sa.Column('source_platform', sa.String(50), nullable=True),
        sa.Column('source_creator', sa.String(200), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('linked_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_recipe_source_links_owner_id', 'recipe_source_links', ['owner_id'])
    op.create_index('ix_recipe_source_links_master_recipe_id', 'recipe_source_links', ['master_recipe_id'])

    op.create_table(
        'recipe_versions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('master_recipe_id', sa.String(36), sa.ForeignKey('master_recipes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('version_number', sa.Integer, nullable=False),
        sa.Column('title', sa.String(200), nullable=True),
        sa.Column('ingredients', JSON_COLUMN, nullable=False),
        sa.Column('steps', JSON_COLUMN, nullable=False),
        sa.Column('change_notes', sa.Text, nullable=True),
        sa.Column('parent_version_id', sa.String(36), sa.ForeignKey('recipe_versions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('based_on_source_id', sa.String(36), sa.ForeignKey('recipe_source_links.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_from_mode', sa.String(20), nullable=False, server_default='import'),
        sa.Column('created_from_session_id', sa.String(36), nullable=True),
        sa.Column('created_from_title', sa.String(200), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        # Concurrent allocators race on this; the loser retries with a fresh max
        sa.UniqueConstraint('master_recipe_id', 'version_number', name='uq_recipe_versions_number'),
    )
    op.create_index('ix_recipe_versions_master_recipe_id', 'recipe_versions', ['master_recipe_id'])

    op.create_table(
        'cook_sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('master_recipe_id', sa.String(36), sa.ForeignKey('master_recipes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('version_id', sa.String(36), sa.ForeignKey('recipe_versions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('source_link_id', sa.String(36), sa.ForeignKey('recipe_source_links.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('detected_learnings', JSON_COLUMN, nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_cook_sessions_master_recipe_id', 'cook_sessions', ['master_recipe_id'])

    # master_recipes <-> recipe_versions cycle
    with op.batch_alter_table('master_recipes') as batch_op:
        batch_op.create_foreign_key(
            'fk_master_recipes_current_version_id',
            'recipe_versions',
            ['current_version_id'],
            ['id'],
            ondelete='SET NULL',
        )


def downgrade() -> None:
    with op.batch_alter_table('master_recipes') as batch_op:
        batch_op.drop_constraint('fk_master_recipes_current_version_id', type_='foreignkey')
    op.drop_index('ix_cook_sessions_master_recipe_id', table_name='cook_sessions')
    op.drop_table('cook_sessions')
    op.drop_index('ix_recipe_versions_master_recipe_id', table_name='recipe_versions')
    op.drop_table('recipe_versions')
    op.drop_index('ix_recipe_source_links_master_recipe_id', table_name='recipe_source_links')
    op.drop_index('ix_recipe_source_links_owner_id', table_name='recipe_source_links')
    op.drop_table('recipe_source_links')
    op.drop_index('ix_master_recipes_owner_id', table_name='master_recipes')
    op.drop_table('master_recipes')
