import json

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from config import settings
from db.documents import detect_schema_version


engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False},
    echo=False,
)


# Enable WAL mode for better concurrent read performance
@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_startup_migrations(bind=None) -> None:
    """Apply lightweight schema fixes for existing SQLite databases."""
    bind = bind or engine
    inspector = inspect(bind)

    def _table_columns(table_name: str) -> set[str]:
        if not inspector.has_table(table_name):
            return set()
        return {col["name"] for col in inspector.get_columns(table_name)}

    user_columns = _table_columns("users")
    task_columns = _table_columns("plan_tasks")
    if not user_columns and not task_columns:
        # Tables may not exist yet on first boot.
        return

    alter_statements: list[str] = []
    if user_columns and "schema_version" not in user_columns:
        alter_statements.append("ALTER TABLE users ADD COLUMN schema_version INTEGER")
    if task_columns and "task_count" not in task_columns:
        alter_statements.append("ALTER TABLE plan_tasks ADD COLUMN task_count INTEGER DEFAULT 0")

    with bind.begin() as conn:
        for stmt in alter_statements:
            conn.execute(text(stmt))

        if user_columns:
            # Records imported before the column existed carry the version inside
            # the document, or no version at all (legacy single-plan shape).
            rows = conn.execute(
                text("SELECT email, document FROM users WHERE schema_version IS NULL")
            ).mappings().all()
            for row in rows:
                try:
                    raw = json.loads(row["document"] or "{}")
                except json.JSONDecodeError:
                    raw = {}
                version = int(detect_schema_version(raw))
                conn.execute(
                    text("UPDATE users SET schema_version = :version WHERE email = :email"),
                    {"version": version, "email": row["email"]},
                )
        if task_columns:
            conn.execute(text("UPDATE plan_tasks SET task_count = COALESCE(task_count, 0)"))
        if user_columns:
            conn.execute(text("CREATE INDEX IF NOT EXISTS idx_users_schema_version ON users (schema_version)"))
