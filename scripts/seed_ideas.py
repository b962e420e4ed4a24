#!/usr/bin/env python3
"""
Seed script for idea portal sample data.

Creates three sample ideas, with voter sets matching their vote counts,
when the store is empty. An existing store is left untouched.

Usage:
    python scripts/seed_ideas.py

Environment variables:
    - IDEAS_DATA_DIR: Root directory of the store (default: data)
"""

import asyncio
import os
import sys
from typing import Any

# Add the backend directory to the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "app", "backend"))

from dotenv import load_dotenv

load_dotenv()

from ideastore.config import StoreConfig
from ideastore.models import Idea, now_ms
from ideastore.service import IdeasService

DAY_MS = 24 * 60 * 60 * 1000

SAMPLE_IDEAS: list[dict[str, Any]] = [
    {
        "title": "AI-Powered Code Review Assistant",
        "description": "Develop an intelligent code review system that uses machine learning to automatically detect bugs, security vulnerabilities, and suggest improvements in pull requests.",
        "category": "SCM Suite - OMS",
        "source": "Tech Debt",
        "status": "submitted",
        "priority": "high",
        "authorName": "John Developer",
        "authorEmail": "john@company.com",
        "voters": [f"user{n}" for n in range(1, 9)],
        "commentCount": 3,
        "created_days_ago": 2,
        "updated_days_ago": 2,
    },
    {
        "title": "Employee Wellness Dashboard",
        "description": "Create a comprehensive wellness platform that tracks employee health metrics, provides personalized wellness recommendations, and integrates with company benefits.",
        "category": "Retail Management Suite - POS",
        "source": "Market Gap",
        "status": "under_review",
        "priority": "medium",
        "authorName": "Sarah Wilson",
        "authorEmail": "sarah@company.com",
        "voters": [f"user{n}" for n in range(1, 13)],
        "commentCount": 5,
        "created_days_ago": 5,
        "updated_days_ago": 1,
    },
    {
        "title": "Automated Customer Support Chatbot",
        "description": "Build an intelligent chatbot that can handle 80% of customer inquiries automatically, reducing support ticket volume and improving response times.",
        "category": "SCM Suite - WMS",
        "source": "RFP/RFI",
        "status": "approved",
        "authorName": "Mike Chen",
        "authorEmail": "mike@company.com",
        "voters": [f"user{n}" for n in range(1, 16)],
        "commentCount": 8,
        "created_days_ago": 7,
        "updated_days_ago": 3,
    },
]


async def seed_ideas() -> None:
    """Create the sample ideas in an empty store."""
    config = StoreConfig.from_env()
    service = IdeasService.from_config(config)
    await service.initialize()

    existing = await service.ideas.list_all()
    if existing:
        print(f"Store at {config.data_dir} already holds {len(existing)} ideas, nothing to do.")
        return

    base_time = now_ms()
    for sample in SAMPLE_IDEAS:
        document = {k: v for k, v in sample.items() if not k.endswith("_days_ago") and k != "voters"}
        document["id"] = await service.ideas.allocate_id()
        document["attachments"] = []
        document["voteCount"] = len(sample["voters"])
        document["createdAt"] = base_time - sample["created_days_ago"] * DAY_MS
        document["updatedAt"] = base_time - sample["updated_days_ago"] * DAY_MS

        idea = Idea.from_document(document)
        await service.ideas.create(idea)
        await service.votes.store.save(idea.idea_id, set(sample["voters"]))
        print(f"  [{idea.idea_id}] {idea.title}")

    total = await service.ideas.refresh_total_count()
    print(f"\nSeeded {total} ideas into {config.data_dir}")


def main():
    """Main entry point."""
    print("=== Idea Portal Seed Script ===")
    asyncio.run(seed_ideas())


if __name__ == "__main__":
    main()
