"""
Seed script - populates the database with development data.

Usage:
    python -m scripts.seed

Creates the AI provider chain (tried in priority order when structured
extraction is not confident enough) and a handful of job listings on
boards the structured extractors know about.

This script is IDEMPOTENT - running it twice won't create duplicates.
It checks for existing data before inserting.
"""
import asyncio
import sys
import os

# Add project root to path so imports work
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.config import settings
from app.core.database import async_session_maker, init_db
from app.models.job_listing import JobListing
from app.models.llm_provider_config import LlmProviderConfig, ProviderType
from app.repositories.job_listing_repository import JobListingRepository
from app.repositories.provider_repository import ProviderConfigRepository


# ─── AI provider chain ─────────────────────────────────────────
# Lower priority runs first. Ollama is disabled by default since it
# needs a local model server.

PROVIDERS = [
    {
        "name": "openai-gpt-4o-mini",
        "provider_type": ProviderType.OPENAI.value,
        "llm_model": "gpt-4o-mini",
        "priority": 10,
        "enabled": True,
        "timeout_seconds": 60,
        "max_tokens": 4096,
    },
    {
        "name": "anthropic-claude-haiku",
        "provider_type": ProviderType.ANTHROPIC.value,
        "llm_model": "claude-3-5-haiku-latest",
        "priority": 20,
        "enabled": True,
        "timeout_seconds": 60,
        "max_tokens": 4096,
    },
    {
        "name": "ollama-llama3",
        "provider_type": ProviderType.OLLAMA.value,
        "llm_model": "llama3.1",
        "priority": 30,
        "enabled": False,
        "timeout_seconds": 120,
        "max_tokens": 4096,
        "api_endpoint": settings.ollama_base_url,
    },
]


# ─── Sample listings ───────────────────────────────────────────
# One per supported board plus a generic careers page that has to go
# through the generic selectors or the AI chain.

SAMPLE_LISTINGS = [
    "https://boards.greenhouse.io/twilio/jobs/6012345",
    "https://jobs.lever.co/netflix/2b1c3d4e-5f60-4a7b-8c9d-0e1f2a3b4c5d",
    "https://jobs.ashbyhq.com/linear/3f2a9b1c-7d4e-4c1a-9b2e-5f6a7b8c9d0e",
    "https://safaricom.co.ke/careers/senior-backend-engineer",
]


async def seed():
    """Run the seed process."""
    print("Seeding database...")

    # Initialize tables
    await init_db()
    print("  Tables created")

    async with async_session_maker() as db:

        # ── Providers ──────────────────────────────────────
        provider_repo = ProviderConfigRepository()
        added = []
        for data in PROVIDERS:
            if await provider_repo.get_by_name(db, data["name"]):
                continue
            db.add(LlmProviderConfig(**data))
            added.append(data["name"])
        await db.flush()
        if added:
            print(f"  Created {len(added)} providers: {', '.join(added)}")
        else:
            print("  Providers already exist, skipping...")

        # ── Listings ───────────────────────────────────────
        listing_repo = JobListingRepository()
        created = 0
        for url in SAMPLE_LISTINGS:
            if await listing_repo.find_by_url(db, url):
                continue
            db.add(JobListing(url=url))
            created += 1
        await db.flush()
        if created:
            print(f"  Created {created} job listings")
        else:
            print("  Listings already exist, skipping...")

        # Commit everything
        await db.commit()
        print()
        print("Seed complete!")
        print(f"  Enqueue: POST {settings.api_prefix}/scraping/attempts with a job_listing_id")


if __name__ == "__main__":
    asyncio.run(seed())
