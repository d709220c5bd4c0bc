from sqlalchemy import Column, ForeignKey, Numeric, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

from app.database import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(UUID(as_uuid=True), primary_key=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"))
    order_number = Column(Text)
    amount = Column(Numeric(12, 2))
    status = Column(Text)
    payment_status = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True))
