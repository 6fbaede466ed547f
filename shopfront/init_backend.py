# init_backend.py
import asyncio
import logging
import sys
from decimal import Decimal

from dotenv import load_dotenv
from sqlalchemy import delete, select

from shopfront.categories import slugify
from shopfront.db import Database
from shopfront.models import Category, Order, OrderItem, Product
from shopfront.server import configure_logging
from shopfront.settings import Settings

log = logging.getLogger(__name__)

CATEGORIES = ["Courses", "Templates", "Software", "eBooks"]

PRODUCTS = [
    {
        "name": "Complete TypeScript Masterclass",
        "description": "Learn TypeScript from basics to advanced patterns. Includes 50+ exercises and real-world projects.",
        "price": Decimal("49.99"),
        "image_url": "https://images.unsplash.com/photo-1516321318423-f06f85e504b3?w=800",
        "stock": 100,
        "category": "courses",
    },
    {
        "name": "React & Next.js Complete Guide",
        "description": "Master React and Next.js with server-side rendering, API routes, and deployment strategies.",
        "price": Decimal("59.99"),
        "image_url": "https://images.unsplash.com/photo-1633356122544-f134324a6cee?w=800",
        "stock": 75,
        "category": "courses",
    },
    {
        "name": "Node.js Backend Development",
        "description": "Build scalable backend applications with Node.js, Express, and modern JavaScript practices.",
        "price": Decimal("44.99"),
        "image_url": "https://images.unsplash.com/photo-1558494949-ef010cbdcc31?w=800",
        "stock": 50,
        "category": "courses",
    },
    {
        "name": "Full-Stack Web Development eBook",
        "description": "Comprehensive guide covering HTML, CSS, JavaScript, and modern frameworks.",
        "price": Decimal("29.99"),
        "image_url": "https://images.unsplash.com/photo-1498050108023-c5249f4df085?w=800",
        "stock": 200,
        "category": "ebooks",
    },
    {
        "name": "Database Design & Optimization",
        "description": "Learn database design principles, SQL optimization, and NoSQL database management.",
        "price": Decimal("39.99"),
        "image_url": "https://images.unsplash.com/photo-1544383835-bda2bc66a55d?w=800",
        "stock": 80,
        "category": "ebooks",
    },
    {
        "name": "DevOps & CI/CD Pipeline Course",
        "description": "Master Docker, Kubernetes, GitHub Actions, and deployment automation.",
        "price": Decimal("69.99"),
        "image_url": "https://images.unsplash.com/photo-1451187580459-43490279c0fa?w=800",
        "stock": 60,
        "category": "courses",
    },
]


async def seed(database: Database) -> None:
    await database.create_all()

    async with database.session_maker() as session:
        log.info("Cleaning existing data...")
        for model in (OrderItem, Order, Product, Category):
            await session.execute(delete(model))

        categories = {}
        for name in CATEGORIES:
            category = Category(name=name, slug=slugify(name))
            session.add(category)
            categories[category.slug] = category
        await session.flush()
        log.info(f"Created {len(categories)} categories.")

        for data in PRODUCTS:
            fields = {k: v for k, v in data.items() if k != "category"}
            category = categories.get(data["category"])
            if category is None:
                log.warning(f"Category slug {data['category']!r} not found for product {data['name']!r}")
            session.add(Product(**fields, category_id=category.id if category else None))

        await session.commit()
        count = len((await session.execute(select(Product.id))).all())
        log.info(f"Created {count} products.")


async def main() -> None:
    # Load .env if present (hosting platforms provide env vars directly)
    load_dotenv()

    settings = Settings()
    configure_logging(settings.LOG_LEVEL)
    database = Database(settings.DATABASE_URL)
    try:
        await seed(database)
    finally:
        await database.dispose()
    log.info("Backend initialization complete.")


def cli() -> None:
    try:
        asyncio.run(main())
    except Exception as e:
        log.critical(f"Backend initialization failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
