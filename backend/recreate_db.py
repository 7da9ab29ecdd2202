"""
Script to recreate database with the current schema
"""
from app.core.database import SessionLocal, engine
from app.models import Base
from app.services.seed import seed_demo
from app.core.config import settings


def recreate_db():
    print("Recreating database...")

    # Drop all tables
    print("Dropping existing tables...")
    Base.metadata.drop_all(bind=engine)

    print("Creating tables...")
    Base.metadata.create_all(bind=engine)

    print("Seeding demo data...")
    db = SessionLocal()
    try:
        seed_demo(db)
    finally:
        db.close()

    print("Database recreated successfully!")
    print("\nLogin credentials:")
    print(f"   Admin: {settings.seed_admin_email} / {settings.seed_admin_password}")
    print("   Cliente: cliente@demo.com / secret123")


if __name__ == "__main__":
    recreate_db()
