from sqlalchemy import event
from sqlmodel import SQLModel, create_engine

from chatrelay.core.config import settings

engine = create_engine(
    f"sqlite:///{settings.db_path}",
    echo=settings.debug,
    connect_args={"check_same_thread": False},
)


@event.listens_for(engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db() -> None:
    import chatrelay.models  # noqa: F401 - ensure models are registered
    SQLModel.metadata.create_all(engine)
