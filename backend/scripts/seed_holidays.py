"""Seed holidays from config/holidays.yaml (idempotent; run after alembic upgrade head)"""
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from crew_command.database import SystemSessionLocal
from crew_command.services.holiday_calendar import load_seed_holidays, seed_file_path, seed_holidays


async def run(path: Path = None):
    path = path or seed_file_path()
    if not path.exists():
        print(f"Seed file not found: {path}")
        return
    rows = load_seed_holidays(path)
    async with SystemSessionLocal() as db:
        inserted = await seed_holidays(db, rows)
        await db.commit()
    print(f"Holidays: {inserted} inserted, {len(rows) - inserted} already present ({path})")


if __name__ == "__main__":
    asyncio.run(run(Path(sys.argv[1]) if len(sys.argv) > 1 else None))
