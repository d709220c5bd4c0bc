from sqlalchemy import Boolean, Column, ForeignKey, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(UUID(as_uuid=True), primary_key=True)
    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id"))
    name = Column(Text, nullable=False)
    price = Column(Numeric(12, 2))
    description = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
