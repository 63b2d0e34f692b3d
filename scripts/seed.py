"""Database seeder: users for every role, a category tree, tags and content."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta
from sqlalchemy import insert
from cms.database import engine, async_session, Base
from cms.enums import ContentStatus, ContentType, UserRole
from cms.models import Category, Content, Tag, User, content_categories, content_tags
from cms.slugs import slugify

TAGS = ["python", "fastapi", "postgresql", "redis", "docker", "kubernetes",
        "react", "typescript", "aws", "devops", "testing", "performance",
        "security", "microservices", "graphql", "rest-api"]

CATEGORIES = {
    "Engineering": ["Backend", "Frontend", "Infrastructure"],
    "Company": ["News", "Culture"],
    "Guides": [],
}

STATUS_WEIGHTS = {
    ContentStatus.PUBLISHED: 0.7,
    ContentStatus.DRAFT: 0.2,
    ContentStatus.ARCHIVED: 0.1,
}


async def seed(small: bool = False):
    num_authors = 5 if small else 25
    num_contents = 100 if small else 5000

    print(f"Seeding: {num_authors} authors, {num_contents} contents")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        # Staff accounts, one per privileged role
        users = [
            User(name="Admin", email="admin@example.com", role=UserRole.ADMIN),
            User(name="Editor", email="editor@example.com", role=UserRole.EDITOR),
            User(name="Reader", email="reader@example.com", role=UserRole.SUBSCRIBER),
        ]
        for i in range(num_authors):
            users.append(User(
                name=f"Author {i}",
                email=f"author_{i:04d}@example.com",
                role=UserRole.AUTHOR,
            ))
        session.add_all(users)
        await session.flush()
        writers = [u for u in users if u.role is not UserRole.SUBSCRIBER]
        print(f"  Created {len(users)} users")

        categories = []
        for parent_name, children in CATEGORIES.items():
            parent = Category(name=parent_name, slug=slugify(parent_name))
            session.add(parent)
            await session.flush()
            categories.append(parent)
            for child_name in children:
                child = Category(name=child_name, slug=slugify(child_name), parent_id=parent.id)
                session.add(child)
                categories.append(child)
        await session.flush()
        print(f"  Created {len(categories)} categories")

        tags = [Tag(name=name, slug=slugify(name)) for name in TAGS]
        session.add_all(tags)
        await session.flush()
        print(f"  Created {len(tags)} tags")

        # Contents in batches; associations go in with one executemany per batch
        batch_size = 500
        statuses = list(STATUS_WEIGHTS)
        weights = list(STATUS_WEIGHTS.values())
        for batch_start in range(0, num_contents, batch_size):
            batch_end = min(batch_start + batch_size, num_contents)
            batch = []
            for i in range(batch_start, batch_end):
                topic = random.choice(TAGS)
                created = datetime.now(timezone.utc) - timedelta(days=random.randint(0, 365))
                status = random.choices(statuses, weights)[0]
                title = f"Content {i}: Working with {topic}"
                content = Content(
                    title=title,
                    slug=slugify(title),
                    body=f"This is the body of content {i}, all about {topic}. " * 20,
                    excerpt=f"A practical look at {topic}.",
                    type=random.choice([ContentType.ARTICLE, ContentType.ARTICLE, ContentType.PAGE]),
                    status=status,
                    published_at=created if status is not ContentStatus.DRAFT else None,
                    meta={"views": random.randint(0, 10000)},
                    created_at=created,
                    author_id=random.choice(writers).id,
                )
                batch.append(content)
            session.add_all(batch)
            await session.flush()

            tag_rows = [
                {"content_id": c.id, "tag_id": t.id}
                for c in batch
                for t in random.sample(tags, k=random.randint(1, 4))
            ]
            category_rows = [
                {"content_id": c.id, "category_id": random.choice(categories).id}
                for c in batch
            ]
            await session.execute(insert(content_tags), tag_rows)
            await session.execute(insert(content_categories), category_rows)

            print(f"  Batch {batch_start}-{batch_end}: contents created")

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {len(users)}")
    print(f"  Categories: {len(categories)}")
    print(f"  Tags: {len(TAGS)}")
    print(f"  Contents: {num_contents}")


def main():
    parser = argparse.ArgumentParser(description="Seed the content database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 contents)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
