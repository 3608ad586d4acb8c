"""
Initialize database: creates all tables and seeds the demo depot layout.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py [--no-seed]
"""

import argparse
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from app.database import create_tables, engine, SessionLocal
from app.config import settings
from app.services.depot_layout import seed_depot
from sqlalchemy import text, inspect


def main():
    parser = argparse.ArgumentParser(description="Create tables and seed the depot layout")
    parser.add_argument("--no-seed", action="store_true", help="only create tables")
    args = parser.parse_args()

    print("🗄️  Depot DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    # Test connection
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        print("\nMake sure PostgreSQL is running:")
        print("  docker-compose up -d db")
        print("  # or: sudo systemctl start postgresql")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    tables = sorted(inspect(engine).get_table_names())
    print(f"✅ Tables in database ({len(tables)} total):")
    for t in tables:
        print(f"   ✓ {t}")

    if not args.no_seed:
        print("\n🅿️  Seeding depot layout...")
        db = SessionLocal()
        try:
            counts = seed_depot(db)
        finally:
            db.close()
        print(f"✅ Added {counts['floors']} floors, {counts['checkpoints']} checkpoints, "
              f"{counts['bays']} bays")

    print("\n🎉 Database ready! You can now start the backend:")
    print(f"   uvicorn app.main:app --host 0.0.0.0 --port {settings.BACKEND_PORT} --reload")


if __name__ == "__main__":
    main()
