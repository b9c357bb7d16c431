from sqlalchemy import JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()
metadata = Base.metadata

# portable column types, native on PostgreSQL
UUID = Uuid(as_uuid=False)
JSONType = JSON().with_variant(JSONB(), "postgresql")
