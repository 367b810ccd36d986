"""Create projects and images tables

Revision ID: 3f9a1c2b7d40
Revises:
Create Date: 2025-11-20 10:12:31.218904

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c2b7d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create projects table
    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('category', sa.String(100), nullable=False),
        sa.Column('price_minor_units', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('client_id', sa.String(100), nullable=False),
        sa.Column('invoice_month', sa.String(20), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_projects_client_month', 'projects', ['client_id', 'invoice_month'])

    # Create images table
    op.create_table(
        'images',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('blob_key', sa.String(1024), nullable=False, unique=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('content_type', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_images_project_id', 'images', ['project_id'])


def downgrade() -> None:
    op.drop_index('ix_images_project_id', table_name='images')
    op.drop_table('images')
    op.drop_index('ix_projects_client_month', table_name='projects')
    op.drop_table('projects')
