from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from boothcore.config import settings


def build_engine(database_url: str, echo: bool = False):
    """Create an engine; SQLite needs cross-thread access for the threadpool."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(database_url, echo=echo, future=True, connect_args=connect_args)


engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency yielding a request-scoped session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create all tables (development / tests; production uses migrations)"""
    import boothcore.models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
