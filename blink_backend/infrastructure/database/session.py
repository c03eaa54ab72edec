"""Database engine and session management"""

from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session


def create_session_factory(database_url: str) -> sessionmaker:
    """Build an engine and bound session factory for the given URL"""
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, connect_args={"check_same_thread": False})
    else:
        # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
        engine = create_engine(
            database_url,
            pool_pre_ping=True,  # Verify connections before using
            pool_size=10,
            max_overflow=10,
            pool_recycle=3600,
        )
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request) -> Generator[Session, None, None]:
    """Dependency injection for database sessions"""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
