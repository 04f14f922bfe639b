import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text

from bantuanku_bot.database import Base


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(Text, nullable=False)
    description = Column(Text)
    pillar = Column(Text)  # zakat, infaq, sedekah, wakaf, fidyah, ...
    category = Column(Text)
    goal = Column(BigInteger, default=0)
    collected = Column(BigInteger, default=0)
    donor_count = Column(Integer, default=0)
    status = Column(String(16), nullable=False, default="active")  # draft, active, closed
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
