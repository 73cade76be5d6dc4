from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Constraint names stay stable across SQLite and Postgres migrations
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# Import models so Alembic can discover them
from evaluation_cycles.models import *  # noqa
