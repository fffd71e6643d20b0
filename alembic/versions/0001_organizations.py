"""organizations and organization memberships."""

from alembic import op

from orgschema.bootstrapper import apply_step
from orgschema.plans import ORGANIZATIONS


revision = "0001_organizations"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    connection = op.get_bind()
    for step in ORGANIZATIONS.steps:
        apply_step(connection, step)


def downgrade() -> None:
    for table in reversed(ORGANIZATIONS.tables):
        op.drop_table(table)
