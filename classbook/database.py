from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from classbook.core import config


# Composite indexes the sorted listing path depends on, keyed by the identity column.
# ``None`` is the administrator view, which has no identity filter.
LISTING_INDEXES = {
    'requester_id': ('idx_appointments_requester_scheduled', 'requester_id, scheduled_at'),
    'owner_id': ('idx_appointments_owner_scheduled', 'owner_id, scheduled_at'),
    None: ('idx_appointments_scheduled', 'scheduled_at'),
}


def _engine_options(database_url: str) -> dict:
    if database_url.startswith('sqlite'):
        return {'connect_args': {'check_same_thread': False}}

    options = {'pool_timeout': config.DB_POOL_TIMEOUT_SECONDS, 'pool_pre_ping': True}
    if database_url.startswith('postgresql'):
        options['connect_args'] = {'options': f'-c statement_timeout={config.DB_STATEMENT_TIMEOUT_MS}'}
    return options


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False


def create_listing_indexes(bind: Engine) -> None:
    with bind.begin() as connection:
        for index_name, columns in LISTING_INDEXES.values():
            connection.execute(
                text(f'CREATE INDEX IF NOT EXISTS {index_name} ON appointments({columns})')
            )


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'availability_slots' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('availability_slots')}
        migration_steps = [
            ('slot_date', 'ALTER TABLE availability_slots ADD COLUMN slot_date DATE'),
            ('created_at', 'ALTER TABLE availability_slots ADD COLUMN created_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('version', 'ALTER TABLE appointments ADD COLUMN version INTEGER NOT NULL DEFAULT 1'),
            ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
            ('updated_by', 'ALTER TABLE appointments ADD COLUMN updated_by VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))

        if config.CREATE_LISTING_INDEXES:
            create_listing_indexes(engine)

        _appointment_schema_checked = True


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
