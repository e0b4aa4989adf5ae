#!/usr/bin/env python3
"""
Initialize the waitlist database tables
"""
from waitlist.core.database import Base, engine, connect_with_retry

# Import all models to ensure they're registered with Base
from waitlist import models  # noqa: F401


def init_database():
    """Create all tables if they don't exist yet"""
    connect_with_retry()
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("Tables created successfully!")


if __name__ == "__main__":
    init_database()
    print("Database initialization complete!")
