"""
SQLAlchemy engine and session factory for the URL store.

Sessions are short-lived: the repository opens one per operation, so the
factory can be shared by request handlers and detached click jobs alike.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from shortlink_app.config import settings


def make_engine(database_url: str):
    """Create an engine, relaxing SQLite's same-thread check"""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


def make_session_factory(bind) -> sessionmaker:
    # expire_on_commit=False: rows are read after the session closes
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)


engine = make_engine(settings.database_url)
SessionLocal = make_session_factory(engine)

Base = declarative_base()
