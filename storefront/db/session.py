from contextlib import contextmanager
import os
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/app.db")


def build_engine(database_url: str = DATABASE_URL) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        # Ensure sqlite file parent directory exists to avoid 'unable to open database file'
        if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
            db_path = database_url.split("sqlite:///")[-1]
            Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, future=True, connect_args=connect_args)


def make_session_factory(engine: Engine):
    """Return a transactional scope bound to ``engine``.

    The scope commits when the block exits normally and rolls back on any
    exception; the session is closed on every path.
    """
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    @contextmanager
    def session_scope():
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return session_scope


def init_db(engine: Engine) -> None:
    from ..models import Base

    Base.metadata.create_all(engine)


_default_scope = None


@contextmanager
def get_session():
    global _default_scope
    if _default_scope is None:
        _default_scope = make_session_factory(build_engine(DATABASE_URL))
    with _default_scope() as session:
        yield session
