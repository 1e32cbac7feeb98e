"""notification_intent_link

Links each inbox notification to the outbox intent that created it, so a
retried intent only notifies the recipients it has not reached yet.

Revision ID: c52e8d7a4b31
Revises: a1c4e2f90b17
Create Date: 2026-10-19 16:40:02.915437

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'c52e8d7a4b31'
down_revision = 'a1c4e2f90b17'
branch_labels = None
depends_on = None


def upgrade():
    columns = {c["name"] for c in sa_inspect(op.get_bind()).get_columns("notifications")}
    if "intent_id" in columns:  # already created by db.create_all()
        return

    with op.batch_alter_table('notifications', schema=None) as batch_op:
        batch_op.add_column(sa.Column('intent_id', sa.Integer(), nullable=True,
            comment='NotificationIntent that produced this entry'))
        batch_op.create_index('ix_notifications_intent_id', ['intent_id'], unique=False)


def downgrade():
    with op.batch_alter_table('notifications', schema=None) as batch_op:
        batch_op.drop_index('ix_notifications_intent_id')
        batch_op.drop_column('intent_id')
