#!/usr/bin/env python3
"""
Seed Data Script for the Family Portal

Creates a small "Doe family" community with:
- 4 Users (Grace admin, Henry admin, Paula publisher, Mark member)
- Pending requests of every kind, submitted through the approval engine
  so that admins receive their "new request" notifications
- One approved family-member request (promoted to the family tree)
- One rejected gallery item

Run with: python seed_data.py
"""

import asyncio

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from family_portal.core.config import get_settings
from family_portal.core.database import async_session_factory, init_db
from family_portal.models import RequestKind, User
from family_portal.services import build_services

settings = get_settings()


async def seed_database():
    """Main seeding function."""
    await init_db()

    async with async_session_factory() as session:
        print("🌱 Starting database seed...")

        # Check if data already exists
        result = await session.execute(text("SELECT COUNT(*) FROM users"))
        count = result.scalar()
        if count and count > 0:
            print("⚠️  Database already has data. Clearing existing data...")
            await clear_database(session)

        # =================================================================
        # CREATE USERS
        # =================================================================
        print("\n👥 Creating users...")

        users = [
            User(id="grace", email="grace@doe.family", user_metadata={"is_admin": True, "full_name": "Grace Doe"}),
            User(id="henry", email="henry@doe.family", user_metadata={"is_admin": True, "full_name": "Henry Doe"}),
            User(id="paula", email="paula@doe.family", user_metadata={"is_publisher": True, "full_name": "Paula Doe"}),
            User(id="mark", email="mark@doe.family", user_metadata={"full_name": "Mark Doe"}),
        ]
        session.add_all(users)
        await session.commit()
        for user in users:
            print(f"   ✓ Created: {user.email}")

    # Identity comes from the users table regardless of configuration
    services = build_services(
        settings.model_copy(update={"identity_backend": "database"}),
        async_session_factory,
    )
    engine = services.engine

    # =================================================================
    # SUBMIT REQUESTS
    # =================================================================
    print("\n📝 Submitting requests...")

    jane = await engine.submit(
        RequestKind.FAMILY_MEMBER,
        {
            "name": "Jane Doe",
            "gender": "Female",
            "birthDate": "1990-01-01",
            "fatherName": "John Doe",
            "motherName": "Mary Doe",
            "orderOfBirth": 2,
        },
        submitter_id="mark",
    )
    await engine.submit(
        RequestKind.FAMILY_MEMBER,
        {"name": "Samuel Doe Junior", "gender": "male", "fatherName": "Samuel Doe"},
        submitter_id="mark",
    )
    await engine.submit(
        RequestKind.MEMBER,
        {"first_name": "Lucy", "last_name": "Doe", "email": "lucy@example.com"},
    )
    beach = await engine.submit(
        RequestKind.GALLERY,
        {"url": "https://images.example.com/beach.jpg", "caption": "Beach day 2019"},
        submitter_id="mark",
    )
    await engine.submit(
        RequestKind.GALLERY,
        {"url": "https://images.example.com/reunion.jpg", "caption": "Reunion"},
        submitter_id="mark",
    )
    await engine.submit(
        RequestKind.NOTICE_BOARD,
        {"title": "Family reunion", "description": "Save the date!", "tags": ["Reunion", "2025"]},
        submitter_id="paula",
    )
    await engine.submit(
        RequestKind.EVENT,
        {"name": "Grandma's 90th", "location": "Lagos", "event_date": "2025-08-01T18:00:00Z"},
        submitter_id="mark",
    )

    # =================================================================
    # DECIDE A FEW
    # =================================================================
    print("\n✅ Reviewing...")
    await engine.approve(jane.id, RequestKind.FAMILY_MEMBER, actor_id="grace")
    await engine.reject(beach.id, RequestKind.GALLERY, actor_id="paula", note="Blurry photo")

    counts = await services.fetch_pending_counts()
    await services.close()

    print("\n" + "=" * 60)
    print("✅ DATABASE SEEDED SUCCESSFULLY!")
    print("=" * 60)
    print(f"""
📊 Summary:
   • 4 Users: Grace, Henry (admins), Paula (publisher), Mark (member)
   • Pending: {counts.as_dict()}
   • Jane Doe approved and added to the family tree
   • "Beach day 2019" rejected

🧪 Sign in as "grace" to review, or as "mark" to see decision notifications.
""")


async def clear_database(session: AsyncSession):
    """Clear all data from the database."""
    tables = [
        "notifications",
        "family_tree",
        "family_member_requests",
        "profiles",
        "galleries",
        "notice_boards",
        "events",
        "users",
    ]

    for table in tables:
        await session.execute(text(f"DELETE FROM {table}"))

    await session.commit()
    print("   ✓ Cleared existing data")


if __name__ == "__main__":
    asyncio.run(seed_database())
