from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from kijumbe.config import settings

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Create tables that do not exist yet."""
    import kijumbe.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
