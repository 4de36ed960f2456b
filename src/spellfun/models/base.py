"""Collection layout for the structured store."""
from dataclasses import dataclass
from typing import Dict, Tuple

from sqlalchemy import JSON, Column, Index, Integer, MetaData, String, Table

SCHEMA_VERSION = 1
META_TABLE = "store_meta"


@dataclass(frozen=True)
class CollectionSchema:
    """A named collection keyed by ``id`` with non-unique secondary indexes."""
    name: str
    indexes: Tuple[str, ...] = ()


COLLECTIONS: Dict[str, CollectionSchema] = {
    schema.name: schema
    for schema in (
        CollectionSchema("users", indexes=("name",)),
        CollectionSchema("lessons", indexes=("userId",)),
        CollectionSchema("lessonProgress", indexes=("lessonId", "userId")),
    )
}


def index_name(collection: str, field: str) -> str:
    """Name of the database index backing a secondary index."""
    return f"ix_{collection}_{field}"


def build_metadata(collections: Dict[str, CollectionSchema] = COLLECTIONS) -> MetaData:
    """Build SQLAlchemy tables for every collection plus the version table."""
    metadata = MetaData()
    Table(
        META_TABLE,
        metadata,
        Column("id", Integer, primary_key=True),
        Column("version", Integer, nullable=False),
    )
    for schema in collections.values():
        columns = [
            Column("id", String, primary_key=True),
            Column("data", JSON, nullable=False),
        ]
        columns.extend(Column(field, String, nullable=True) for field in schema.indexes)
        table = Table(schema.name, metadata, *columns)
        for field in schema.indexes:
            Index(index_name(schema.name, field), table.c[field])
    return metadata
