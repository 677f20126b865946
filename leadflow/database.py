from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from leadflow.config import settings

_connect_args = {}
if settings.database_url.startswith("sqlite"):
    _connect_args["check_same_thread"] = False

engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=_connect_args)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yield a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create all tables. Production schemas are managed by migrations."""
    import leadflow.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
