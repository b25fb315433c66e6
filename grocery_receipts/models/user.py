"""
User accounts mirrored from the identity provider.
"""
from sqlalchemy import Column, DateTime, String

from grocery_receipts.database import Base
from grocery_receipts.models.receipt import utcnow


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)  # identity provider subject
    email = Column(String, nullable=False, unique=True)
    name = Column(String)
    image = Column(String)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
