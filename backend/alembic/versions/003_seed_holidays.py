"""seed holidays from config/holidays.yaml

Revision ID: 003
Revises: 002
Create Date: 2026-01-06

"""
from datetime import datetime
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

from crew_command.services.holiday_calendar import load_seed_holidays

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

holidays_table = sa.table(
    "holidays",
    sa.column("name", sa.String),
    sa.column("date", sa.Date),
    sa.column("year", sa.Integer),
    sa.column("state_county", sa.Boolean),
    sa.column("federal", sa.Boolean),
    sa.column("gcla", sa.Boolean),
    sa.column("four_basic_trades", sa.Boolean),
    sa.column("pay_rates", sa.JSON),
    sa.column("notes", sa.Text),
    sa.column("created_at", sa.DateTime),
)


def upgrade() -> None:
    conn = op.get_bind()
    existing = {
        (row.date, row.name)
        for row in conn.execute(sa.select(holidays_table.c.date, holidays_table.c.name))
    }
    now = datetime.utcnow()
    rows = [
        {**row, "created_at": now}
        for row in load_seed_holidays()
        if (row["date"], row["name"]) not in existing
    ]
    if rows:
        op.bulk_insert(holidays_table, rows)


def downgrade() -> None:
    conn = op.get_bind()
    for row in load_seed_holidays():
        conn.execute(
            holidays_table.delete().where(
                holidays_table.c.date == row["date"],
                holidays_table.c.name == row["name"],
            )
        )
