from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from examprep.core.config import get_settings

engine = create_engine(get_settings().DATABASE_URL, future=True, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


def init_db(bind: Engine = engine) -> None:
    """Create tables that don't exist yet. Production schemas are managed by migrations."""
    from examprep.models.orm import Base
    Base.metadata.create_all(bind)
