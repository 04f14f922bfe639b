import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from bantuanku_bot.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class QurbanPeriod(Base):
    __tablename__ = "qurban_periods"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    hijri_year = Column(String(8))
    gregorian_year = Column(Integer)
    status = Column(String(16), nullable=False, default="active")

    package_periods = relationship("QurbanPackagePeriod", back_populates="period")


class QurbanPackage(Base):
    __tablename__ = "qurban_packages"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    animal_type = Column(String(16), nullable=False)  # cow, goat
    package_type = Column(String(16), nullable=False)  # individual, shared
    max_slots = Column(Integer)
    description = Column(Text)
    is_available = Column(Boolean, nullable=False, default=True)

    package_periods = relationship("QurbanPackagePeriod", back_populates="package")


class QurbanPackagePeriod(Base):
    __tablename__ = "qurban_package_periods"

    id = Column(String(36), primary_key=True, default=_uuid)
    package_id = Column(String(36), ForeignKey("qurban_packages.id"), nullable=False)
    period_id = Column(String(36), ForeignKey("qurban_periods.id"), nullable=False)
    price = Column(BigInteger, nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    stock_sold = Column(Integer, nullable=False, default=0)
    slots_filled = Column(Integer, nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=True)

    package = relationship("QurbanPackage", back_populates="package_periods")
    period = relationship("QurbanPeriod", back_populates="package_periods")
    shared_groups = relationship("QurbanSharedGroup", back_populates="package_period")


class QurbanSharedGroup(Base):
    __tablename__ = "qurban_shared_groups"

    id = Column(String(36), primary_key=True, default=_uuid)
    package_period_id = Column(String(36), ForeignKey("qurban_package_periods.id"), nullable=False)
    group_number = Column(Integer, nullable=False)
    max_slots = Column(Integer, nullable=False)
    slots_filled = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="open")  # open, full

    package_period = relationship("QurbanPackagePeriod", back_populates="shared_groups")


class QurbanSavings(Base):
    __tablename__ = "qurban_savings"

    id = Column(String(36), primary_key=True, default=_uuid)
    savings_number = Column(String(32), unique=True, nullable=False)
    donatur_id = Column(String(36), ForeignKey("donatur.id"))
    donor_name = Column(Text, nullable=False)
    donor_phone = Column(String(32), index=True)
    target_period_id = Column(String(36), ForeignKey("qurban_periods.id"), nullable=False)
    target_package_period_id = Column(String(36), ForeignKey("qurban_package_periods.id"), nullable=False)
    target_amount = Column(BigInteger, nullable=False)
    current_amount = Column(BigInteger, nullable=False, default=0)
    installment_frequency = Column(String(16), nullable=False)  # monthly, weekly
    installment_count = Column(Integer, nullable=False)
    installment_amount = Column(BigInteger, nullable=False)
    installment_day = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="active")  # active, completed, cancelled
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    package_period = relationship("QurbanPackagePeriod")
