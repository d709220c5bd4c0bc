from sqlalchemy import Column, Text
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base


class Store(Base):
    """Storefront owned by a tenant. Read-only here."""

    __tablename__ = "stores"

    id = Column(UUID(as_uuid=True), primary_key=True)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    title = Column(Text)
