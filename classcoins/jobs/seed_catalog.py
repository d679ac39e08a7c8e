"""
Seed a school's creature pool from a JSON file.

    python -m classcoins.jobs.seed_catalog --school-id school-1 --file pool.json

The file holds a list of creatures (or an object with a "creatures" list):

    [{"id": "sparkfox", "name": "Sparkfox", "rarity": "rare",
      "types": ["fire"], "image_url": null}]

Existing creatures with the same id are updated; nothing is deleted.
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, TypeAdapter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classcoins.db.database import async_session_factory, init_db, unit_of_work
from classcoins.db.operations import upsert_creatures
from classcoins.models.economy import CreatureEntry

logger = logging.getLogger(__name__)


class CreatureRecord(BaseModel):
    """One creature as written in a pool file."""

    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    rarity: str = "common"
    types: list[str] = Field(default_factory=list)
    image_url: str | None = None


_records = TypeAdapter(list[CreatureRecord])


def load_pool_file(path: Path, school_id: str) -> list[CreatureEntry]:
    """
    Parse a pool file into catalog entries for `school_id`.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the JSON is malformed or ids repeat
        pydantic.ValidationError: If an entry is missing required fields
    """
    raw = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("creatures", [])

    records = _records.validate_python(raw)

    seen: set[str] = set()
    for record in records:
        if record.id in seen:
            raise ValueError(f"Duplicate creature id in {path.name}: {record.id}")
        seen.add(record.id)

    return [
        CreatureEntry(
            id=record.id,
            name=record.name,
            school_id=school_id,
            rarity=record.rarity,
            types=tuple(record.types),
            image_url=record.image_url,
        )
        for record in records
    ]


async def seed_catalog(
    school_id: str,
    path: Path,
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
) -> int:
    """Upsert every creature in the file. Returns the number written."""
    creatures = load_pool_file(path, school_id)
    if not creatures:
        logger.warning("CATALOG_FILE_EMPTY", extra={"school_id": school_id, "file": str(path)})
        return 0

    async with unit_of_work(session_factory) as session:
        count = await upsert_creatures(session, school_id, creatures)

    logger.info("CATALOG_SEEDED", extra={"school_id": school_id, "count": count})
    return count


async def run_seed(school_id: str, path: Path) -> int:
    """Create tables if needed, then seed."""
    await init_db()
    return await seed_catalog(school_id, path)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Seed a school's creature pool")
    parser.add_argument("--school-id", required=True, help="School that owns the pool")
    parser.add_argument("--file", required=True, type=Path, help="JSON pool file")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    count = asyncio.run(run_seed(args.school_id, args.file))
    logger.info("Seeded %d creatures for school %s", count, args.school_id)


if __name__ == "__main__":
    main()
