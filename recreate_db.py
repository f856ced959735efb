"""
Script to recreate the database schema and load the demo data
"""
from perrino.core.database import SessionLocal, engine
from perrino.models import Base
from perrino.services.seed import DEMO_EMAIL, seed_demo


def recreate_db():
    print("Recreating database schema...")

    print("Dropping existing tables...")
    Base.metadata.drop_all(bind=engine)

    print("Creating tables...")
    Base.metadata.create_all(bind=engine)

    print("Seeding demo data...")
    db = SessionLocal()
    try:
        seed_demo(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    print("Database recreated successfully!")
    print("\nLogin credentials:")
    print(f"   Email: {DEMO_EMAIL}")
    print("   Password: secret123")


if __name__ == "__main__":
    recreate_db()
