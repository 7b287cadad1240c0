import sqlalchemy
from sqlalchemy import Column, MetaData, String
from sqlalchemy.orm import declarative_base
from uuid_extension import uuid7

# Named constraints so Alembic batch migrations on SQLite can alter them
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

Base = declarative_base(metadata=MetaData(naming_convention=NAMING_CONVENTION))


class BaseModel(Base):
    """Abstract base: string UUIDv7 id plus created/updated timestamps."""
    __abstract__ = True

    id = Column(String, primary_key=True, default=lambda: str(uuid7()), index=True)
    created_at = Column(
        sqlalchemy.DateTime(timezone=True), server_default=sqlalchemy.func.now(), nullable=False
    )
    updated_at = Column(
        sqlalchemy.DateTime(timezone=True),
        server_default=sqlalchemy.func.now(),
        onupdate=sqlalchemy.func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"

# Models import Base from here; the model registry lives in app/features/performance/models/__init__.py.
