import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from bantuanku_bot.database import Base


def _now():
    return datetime.now(timezone.utc)


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    transaction_number = Column(String(32), unique=True, nullable=False)
    product_type = Column(String(16), nullable=False)  # campaign, zakat, qurban
    product_id = Column(String(36), nullable=False)
    product_name = Column(Text, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(BigInteger, nullable=False)
    subtotal = Column(BigInteger, nullable=False)
    admin_fee = Column(BigInteger, nullable=False, default=0)
    total_amount = Column(BigInteger, nullable=False)
    unique_code = Column(Integer, nullable=False, default=0)
    paid_amount = Column(BigInteger, nullable=False, default=0)
    payment_status = Column(String(16), nullable=False, default="pending")
    donatur_id = Column(String(36), ForeignKey("donatur.id"))
    donor_name = Column(Text, nullable=False)
    donor_email = Column(Text)
    donor_phone = Column(String(32), index=True)
    shared_group_id = Column(String(36), ForeignKey("qurban_shared_groups.id"))
    type_specific_data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    donatur = relationship("Donatur", back_populates="transactions")
    payments = relationship("TransactionPayment", back_populates="transaction")


class TransactionPayment(Base):
    __tablename__ = "transaction_payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    payment_number = Column(String(32), unique=True, nullable=False)
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=False)
    amount = Column(BigInteger, nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=False, default=_now)
    payment_method = Column(Text, default="bank_transfer")
    payment_proof = Column(Text)
    status = Column(String(16), nullable=False, default="pending")  # pending, verified, rejected
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    transaction = relationship("Transaction", back_populates="payments")
