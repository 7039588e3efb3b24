"""Holiday reference data: YAML seed file and date lookups for working-day math."""
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import yaml
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command import config as app_config
from crew_command.models import Holiday

logger = logging.getLogger(__name__)

HOLIDAY_FLAGS = ("state_county", "federal", "gcla", "four_basic_trades")


def seed_file_path() -> Path:
    path = app_config.settings.holiday_seed_file
    if not path.is_absolute():
        path = app_config.BASE_DIR / path
    return path


def _as_date(raw: Any) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return datetime.strptime(str(raw).strip(), "%Y-%m-%d").date()


def load_seed_holidays(path: Optional[Path] = None) -> List[Dict[str, Any]]:
    """Rows ready for the holidays table: name, date, year, the four flags, pay_rates, notes."""
    path = path or seed_file_path()
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    rows = []
    for item in data.get("holidays", []):
        d = _as_date(item["date"])
        flags = item.get("flags") or {}
        row = {
            "name": str(item["name"]).strip(),
            "date": d,
            "year": d.year,
            "pay_rates": dict(item.get("pay_rates") or {}),
            "notes": item.get("notes"),
        }
        for flag in HOLIDAY_FLAGS:
            row[flag] = bool(flags.get(flag, False))
        rows.append(row)
    return rows


async def seed_holidays(db: AsyncSession, rows: Optional[List[Dict[str, Any]]] = None) -> int:
    """Insert seed rows not already present (keyed on date + name). Returns the number inserted."""
    rows = rows if rows is not None else load_seed_holidays()
    r = await db.execute(select(Holiday.date, Holiday.name))
    existing = {(row.date, row.name) for row in r.all()}
    inserted = 0
    for row in rows:
        if (row["date"], row["name"]) in existing:
            continue
        db.add(Holiday(**row))
        existing.add((row["date"], row["name"]))
        inserted += 1
    if inserted:
        await db.flush()
    logger.info("holiday seed: inserted=%s skipped=%s", inserted, len(rows) - inserted)
    return inserted


async def list_holidays_between(db: AsyncSession, start: date, end: date) -> List[Holiday]:
    r = await db.execute(
        select(Holiday).where(Holiday.date >= start, Holiday.date <= end).order_by(Holiday.date, Holiday.name)
    )
    return list(r.scalars().all())


async def get_holiday_dates(db: AsyncSession, start: date, end: date) -> Set[date]:
    return {h.date for h in await list_holidays_between(db, start, end)}


async def get_holiday_names(db: AsyncSession, start: date, end: date) -> Dict[date, str]:
    """{date: name}; days with several holidays join the names."""
    names: Dict[date, str] = {}
    for h in await list_holidays_between(db, start, end):
        names[h.date] = f"{names[h.date]} / {h.name}" if h.date in names else h.name
    return names
