#!/usr/bin/env python3
"""
Migration script replacing the retired ``declined`` status with ``parked``.

Usage:
    python scripts/migrate_declined_to_parked.py

Environment variables:
    - IDEAS_DATA_DIR: Root directory of the store (default: data)
"""

import asyncio
import os
import sys

# Add the backend directory to the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "app", "backend"))

from dotenv import load_dotenv

load_dotenv()

from ideastore.config import StoreConfig
from ideastore.models import IdeaStatus
from ideastore.service import IdeasService


async def migrate(service: IdeasService) -> dict[str, int]:
    """
    Move every declined idea to parked.

    Returns:
        Counts of scanned and updated ideas.
    """
    ideas = await service.ideas.list_all()
    updated = 0

    for listed in ideas:
        if listed.status is not IdeaStatus.DECLINED:
            continue
        async with service.ideas.lock_for(listed.idea_id):
            idea = await service.ideas.get(listed.idea_id)
            if idea is None or idea.status is not IdeaStatus.DECLINED:
                continue
            print(f"  Updating idea {idea.idea_id}: \"{idea.title}\" - declined -> parked")
            idea.status = IdeaStatus.PARKED
            idea.update_timestamp()
            await service.ideas.update(idea)
        updated += 1

    return {"scanned": len(ideas), "updated": updated}


async def main():
    """Main migration function."""
    config = StoreConfig.from_env()
    print(f"Migrating declined -> parked in {config.ideas_dir}")
    print("=" * 60)

    service = IdeasService.from_config(config)
    results = await migrate(service)

    print("\nMigration complete!")
    print(f"  Updated {results['updated']} ideas from 'declined' to 'parked'")
    print(f"  {results['scanned'] - results['updated']} ideas were already using other statuses")


if __name__ == "__main__":
    asyncio.run(main())
