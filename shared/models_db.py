from sqlmodel import Field, SQLModel
from sqlalchemy import Column, LargeBinary, DateTime
from datetime import datetime, timezone

# The object store is modelled as one table of opaque blobs addressed by (bucket, key).
# Nothing here knows about RFQs; key layout and serialization belong to the repositories.

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class StoredObject(SQLModel, table=True):
    __tablename__ = "stored_object" # Explicit table name
    bucket: str = Field(primary_key=True, max_length=63)
    key: str = Field(primary_key=True, max_length=1024)
    body: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
    content_type: str = Field(default="application/json", max_length=255)
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
