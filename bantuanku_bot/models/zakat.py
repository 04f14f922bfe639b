import uuid

from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from bantuanku_bot.database import Base


class ZakatType(Base):
    __tablename__ = "zakat_types"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False)
    calculator_type = Column(Text)  # fitrah, maal, penghasilan, ... (sometimes "zakat-" prefixed)
    description = Column(Text)
    fitrah_amount = Column(BigInteger)
    is_active = Column(Boolean, nullable=False, default=True)

    periods = relationship("ZakatPeriod", back_populates="zakat_type")


class ZakatPeriod(Base):
    __tablename__ = "zakat_periods"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    zakat_type_id = Column(String(36), ForeignKey("zakat_types.id"), nullable=False)
    name = Column(Text, nullable=False)
    hijri_year = Column(String(8))
    status = Column(String(16), nullable=False, default="active")  # draft, active, closed

    zakat_type = relationship("ZakatType", back_populates="periods")
