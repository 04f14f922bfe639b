import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from bantuanku_bot.database import Base


def _now():
    return datetime.now(timezone.utc)


class Donatur(Base):
    __tablename__ = "donatur"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(Text, nullable=False)
    email = Column(Text, unique=True)
    phone = Column(String(32), index=True)
    whatsapp_number = Column(String(32), index=True)
    total_donations = Column(Integer, nullable=False, default=0)
    total_amount = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    transactions = relationship("Transaction", back_populates="donatur")
