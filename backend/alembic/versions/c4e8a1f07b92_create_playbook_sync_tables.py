"""Create knowledge_entry, knowledge_match and sync_run tables

Revision ID: c4e8a1f07b92
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel
from alembic import op

# revision identifiers, used by Alembic.
revision: str = 'c4e8a1f07b92'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the playbook sync tables."""
    op.create_table(
        'knowledge_entry',
        sa.Column('id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('category', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('speaker', sqlmodel.sql.sqltypes.AutoString(), nullable=False, server_default='unknown'),
        sa.Column('content', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('context', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_knowledge_entry_created_at'), 'knowledge_entry', ['created_at'], unique=False)

    op.create_table(
        'knowledge_match',
        sa.Column('id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('knowledge_entry_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('document_path', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('similarity_score', sa.Float(), nullable=False, server_default='0.0'),
        sa.Column('action', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('rationale', sqlmodel.sql.sqltypes.AutoString(), nullable=False, server_default=''),
        sa.Column('sync_run_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        op.f('ix_knowledge_match_knowledge_entry_id'), 'knowledge_match', ['knowledge_entry_id'], unique=False,
    )
    op.create_index(op.f('ix_knowledge_match_sync_run_id'), 'knowledge_match', ['sync_run_id'], unique=False)

    op.create_table(
        'sync_run',
        sa.Column('id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('window_start', sa.DateTime(), nullable=True),
        sa.Column('status', sqlmodel.sql.sqltypes.AutoString(), nullable=False, server_default='running'),
        sa.Column('entries_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('entries_enriched', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('entries_redundant', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('entries_orphaned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('docs_enriched', sa.JSON(), nullable=True),
        sa.Column('docs_created', sa.JSON(), nullable=True),
        sa.Column('commit_sha', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('commit_message', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('error_log', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('llm_cost', sa.Float(), nullable=False, server_default='0.0'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_sync_run_started_at'), 'sync_run', ['started_at'], unique=False)


def downgrade() -> None:
    """Drop the playbook sync tables."""
    op.drop_index(op.f('ix_sync_run_started_at'), table_name='sync_run')
    op.drop_table('sync_run')
    op.drop_index(op.f('ix_knowledge_match_sync_run_id'), table_name='knowledge_match')
    op.drop_index(op.f('ix_knowledge_match_knowledge_entry_id'), table_name='knowledge_match')
    op.drop_table('knowledge_match')
    op.drop_index(op.f('ix_knowledge_entry_created_at'), table_name='knowledge_entry')
    op.drop_table('knowledge_entry')
