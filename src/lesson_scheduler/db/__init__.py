import logging

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker

from lesson_scheduler.db.models import Base
from lesson_scheduler.core.settings import (
    AUTO_CREATE_SCHEMA,
    DATABASE_URL,
    DB_MAX_OVERFLOW,
    DB_POOL_SIZE,
    ENV,
)

logger = logging.getLogger(__name__)

if not DATABASE_URL:
    raise RuntimeError('DATABASE_URL environment variable is required')


def _engine_options(url: str) -> dict:
    options = {'pool_pre_ping': True, 'future': True}
    # SQLite uses its own pool classes, which take no sizing arguments.
    if not url.startswith('sqlite'):
        options.update(pool_size=DB_POOL_SIZE, max_overflow=DB_MAX_OVERFLOW)
    return options


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

REQUIRED_TABLES_DEV = {
    'teachers',
    'students',
    'plans',
    'regular_lessons',
    'lessons',
}


def ensure_schema_dev(bind=None) -> None:
    """Create all tables when a dev database is empty.

    A database holding other tables but missing any lesson table raises
    RuntimeError instead.
    """
    should_autocreate = ENV == 'dev' or AUTO_CREATE_SCHEMA
    if not should_autocreate:
        return

    bind = bind if bind is not None else engine
    existing = set(inspect(bind).get_table_names())
    if not existing:
        Base.metadata.create_all(bind)
        logger.info('[db] Created %s tables in empty %s database', len(Base.metadata.tables), ENV)
        return

    missing = sorted(REQUIRED_TABLES_DEV - existing)
    if missing:
        raise RuntimeError(
            f'Missing required tables: {", ".join(missing)}. '
            'Point DATABASE_URL at an empty database or run "alembic upgrade head".'
        )


def get_session():
    return Session()


__all__ = [
    'engine',
    'Session',
    'ensure_schema_dev',
    'get_session',
]
