from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase

from fairdraw.db.metadata import metadata_obj

# BigInteger in production, SQLite-safe Integer for autoincrement PKs.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    metadata = metadata_obj
