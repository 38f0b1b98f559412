"""
Database bootstrap script
Creates the PYQ tables (and their read-path indexes) if they don't exist
"""

from database.database import engine, Base
from database.models import PYQ, PYQBackup


def create_tables():
    """Create all tables in the database"""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("Tables created successfully!")
    print("\nCreated tables:")
    print(f"  - {PYQ.__tablename__} ({len(PYQ.__table__.indexes)} indexes)")
    print(f"  - {PYQBackup.__tablename__}")


if __name__ == "__main__":
    create_tables()
