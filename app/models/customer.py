from sqlalchemy import Column, Text
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base


class Customer(Base):
    """CRM customer record. Read-only here."""

    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    name = Column(Text)
    email = Column(Text)
    gsm = Column(Text)  # phone, stored with or without a leading +
