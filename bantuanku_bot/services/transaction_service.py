"""Transaction facade: the only place orders and savings plans are written.

Flows hand over fully computed amounts; this module resolves the product,
assigns shared qurban slots, adds the unique transfer code and persists the row.
"""

import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from bantuanku_bot.logging_config import get_logger
from bantuanku_bot.models import (
    Campaign,
    QurbanPackagePeriod,
    QurbanSavings,
    QurbanSharedGroup,
    Transaction,
    TransactionPayment,
    ZakatPeriod,
)
from bantuanku_bot.services.result import Result

logger = get_logger("transaction_service")

PRODUCT_CAMPAIGN = "campaign"
PRODUCT_ZAKAT = "zakat"
PRODUCT_QURBAN = "qurban"
PRODUCT_TYPES = {PRODUCT_CAMPAIGN, PRODUCT_ZAKAT, PRODUCT_QURBAN}

DEFAULT_SHARED_SLOTS = 7


class TransactionError(Exception):
    """Raised when a transaction or savings plan cannot be created."""


@dataclass
class TransactionRequest:
    product_type: str
    product_id: str
    quantity: int
    unit_price: int
    donor_name: str
    donor_phone: str
    admin_fee: int = 0
    donor_email: Optional[str] = None
    donatur_id: Optional[str] = None
    include_unique_code: bool = True
    type_specific_data: dict = field(default_factory=dict)


@dataclass
class TransactionRecord:
    id: str
    transaction_number: str
    product_type: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: int
    admin_fee: int
    total_amount: int
    unique_code: int = 0
    payment_status: str = "pending"
    donor_phone: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def transfer_amount(self) -> int:
        return self.total_amount + (self.unique_code or 0)


@dataclass
class ProductInfo:
    name: str
    price: Optional[int] = None


@dataclass
class SavingsRequest:
    donatur_id: Optional[str]
    donor_name: str
    donor_phone: str
    target_period_id: str
    target_package_period_id: str
    target_amount: int
    installment_frequency: str
    installment_count: int
    installment_amount: int
    installment_day: int


@dataclass
class SavingsRecord:
    id: str
    savings_number: str
    target_amount: int
    installment_amount: int
    installment_count: int
    installment_frequency: str
    installment_day: int


@dataclass
class PaymentRecord:
    payment_number: str
    transaction_number: str
    amount: int
    transfer_amount: int
    has_proof: bool


class TransactionFacade(Protocol):
    def create(self, request: TransactionRequest) -> TransactionRecord: ...

    def get_product(self, product_type: str, product_id: str) -> ProductInfo: ...

    def open_savings(self, request: SavingsRequest) -> SavingsRecord: ...


def transaction_record_from_model(tx: Transaction) -> TransactionRecord:
    return TransactionRecord(
        id=tx.id,
        transaction_number=tx.transaction_number,
        product_type=tx.product_type,
        product_id=tx.product_id,
        product_name=tx.product_name,
        quantity=tx.quantity,
        unit_price=tx.unit_price,
        admin_fee=tx.admin_fee or 0,
        total_amount=tx.total_amount,
        unique_code=tx.unique_code or 0,
        payment_status=tx.payment_status,
        donor_phone=tx.donor_phone,
        created_at=tx.created_at,
    )


def _is_savings_deposit(request: TransactionRequest) -> bool:
    return (request.type_specific_data or {}).get("payment_type") == "savings"


class TransactionService:
    """SQLAlchemy-backed TransactionFacade."""

    def __init__(self, db: Session, rng: Optional[random.Random] = None):
        self.db = db
        self.rng = rng or random.Random()

    def get_product(self, product_type: str, product_id: str) -> ProductInfo:
        if product_type == PRODUCT_CAMPAIGN:
            campaign = self.db.get(Campaign, product_id)
            if not campaign:
                raise TransactionError(f"Campaign {product_id} not found")
            return ProductInfo(name=campaign.title)
        if product_type == PRODUCT_ZAKAT:
            period = self.db.get(ZakatPeriod, product_id)
            if not period:
                raise TransactionError(f"Zakat period {product_id} not found")
            name = period.zakat_type.name if period.zakat_type else period.name
            return ProductInfo(name=name)
        if product_type == PRODUCT_QURBAN:
            package_period = self.db.get(QurbanPackagePeriod, product_id)
            if not package_period:
                raise TransactionError(f"Qurban package period {product_id} not found")
            name = f"{package_period.package.name} - {package_period.period.name}"
            return ProductInfo(name=name, price=package_period.price)
        raise TransactionError(f"Unknown product type: {product_type}")

    def create(self, request: TransactionRequest) -> TransactionRecord:
        if request.product_type not in PRODUCT_TYPES:
            raise TransactionError(f"Unknown product type: {request.product_type}")
        if request.quantity < 1:
            raise TransactionError("Quantity must be at least 1")
        if request.unit_price <= 0:
            raise TransactionError("Unit price must be positive")

        product = self.get_product(request.product_type, request.product_id)

        shared_group_id = None
        if request.product_type == PRODUCT_QURBAN and not _is_savings_deposit(request):
            shared_group_id = self._reserve_qurban_stock(request.product_id, request.quantity)

        subtotal = request.unit_price * request.quantity
        admin_fee = max(request.admin_fee or 0, 0)
        unique_code = self.rng.randint(1, 999) if request.include_unique_code else 0
        today = datetime.now(timezone.utc)

        tx = Transaction(
            transaction_number=self._next_number(Transaction.transaction_number, f"TRX-{today:%Y%m%d}", 5),
            product_type=request.product_type,
            product_id=request.product_id,
            product_name=product.name,
            quantity=request.quantity,
            unit_price=request.unit_price,
            subtotal=subtotal,
            admin_fee=admin_fee,
            total_amount=subtotal + admin_fee,
            unique_code=unique_code,
            payment_status="pending",
            donatur_id=request.donatur_id,
            donor_name=request.donor_name,
            donor_email=request.donor_email,
            donor_phone=request.donor_phone,
            shared_group_id=shared_group_id,
            type_specific_data=dict(request.type_specific_data or {}),
        )
        try:
            self.db.add(tx)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(tx)

        logger.info(
            "Transaction created",
            extra={
                "context": {
                    "transaction_number": tx.transaction_number,
                    "product_type": tx.product_type,
                    "total_amount": tx.total_amount,
                }
            },
        )
        return transaction_record_from_model(tx)

    def open_savings(self, request: SavingsRequest) -> SavingsRecord:
        if request.installment_count < 1 or request.installment_amount <= 0:
            raise TransactionError("Invalid installment plan")
        if not self.db.get(QurbanPackagePeriod, request.target_package_period_id):
            raise TransactionError(f"Qurban package period {request.target_package_period_id} not found")

        year = datetime.now(timezone.utc).year
        savings = QurbanSavings(
            savings_number=self._next_number(QurbanSavings.savings_number, f"SAV-QBN-{year}", 5),
            donatur_id=request.donatur_id,
            donor_name=request.donor_name,
            donor_phone=request.donor_phone,
            target_period_id=request.target_period_id,
            target_package_period_id=request.target_package_period_id,
            target_amount=request.target_amount,
            current_amount=0,
            installment_frequency=request.installment_frequency,
            installment_count=request.installment_count,
            installment_amount=request.installment_amount,
            installment_day=request.installment_day,
            status="active",
        )
        try:
            self.db.add(savings)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(savings)

        logger.info("Qurban savings opened", extra={"context": {"savings_number": savings.savings_number}})
        return SavingsRecord(
            id=savings.id,
            savings_number=savings.savings_number,
            target_amount=savings.target_amount,
            installment_amount=savings.installment_amount,
            installment_count=savings.installment_count,
            installment_frequency=savings.installment_frequency,
            installment_day=savings.installment_day,
        )

    def confirm_payment(
        self,
        transaction_id: str,
        amount: int,
        payment_date: Optional[datetime] = None,
        proof_reference: Optional[str] = None,
    ) -> Result[PaymentRecord]:
        """Record a donor-submitted payment and move the transaction to verification."""
        if not transaction_id:
            return Result.refused("missing_transaction", "Parameter transactionId diperlukan.")
        if not amount or amount <= 0:
            return Result.refused("invalid_amount", "Nominal pembayaran harus lebih dari 0.")

        tx = self.db.get(Transaction, transaction_id)
        if not tx:
            return Result.refused("not_found", "Transaksi tidak ditemukan.")
        if tx.payment_status == "paid":
            return Result.refused("already_paid", "Transaksi ini sudah lunas.")
        if tx.payment_status == "processing":
            return Result.refused(
                "already_processing",
                "Transaksi ini sudah dalam proses verifikasi. Mohon tunggu konfirmasi admin.",
            )

        now = datetime.now(timezone.utc)
        payment = TransactionPayment(
            payment_number=self._next_number(TransactionPayment.payment_number, f"PAY-{now:%Y%m%d}", 6),
            transaction_id=tx.id,
            amount=amount,
            payment_date=payment_date or now,
            payment_method="bank_transfer",
            payment_proof=proof_reference,
            status="pending",
            notes="Konfirmasi pembayaran via WhatsApp Bot",
        )
        tx.paid_amount = (tx.paid_amount or 0) + amount
        tx.payment_status = "processing"
        try:
            self.db.add(payment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return Result.success(
            PaymentRecord(
                payment_number=payment.payment_number,
                transaction_number=tx.transaction_number,
                amount=amount,
                transfer_amount=tx.total_amount + (tx.unique_code or 0),
                has_proof=bool(proof_reference),
            )
        )

    def _reserve_qurban_stock(self, package_period_id: str, quantity: int) -> Optional[str]:
        package_period = self.db.get(QurbanPackagePeriod, package_period_id)
        package = package_period.package

        if package.package_type != "shared":
            available = package_period.stock - package_period.stock_sold
            if quantity > available:
                raise TransactionError(f"Stok tidak cukup (tersedia {available})")
            package_period.stock_sold += quantity
            return None

        if quantity != 1:
            raise TransactionError("Paket patungan hanya bisa dipesan 1 slot per transaksi")
        group = self._assign_shared_group(package_period, package.max_slots or DEFAULT_SHARED_SLOTS)
        return group.id

    def _assign_shared_group(self, package_period: QurbanPackagePeriod, max_slots: int) -> QurbanSharedGroup:
        groups = (
            self.db.query(QurbanSharedGroup)
            .filter(QurbanSharedGroup.package_period_id == package_period.id)
            .order_by(QurbanSharedGroup.group_number)
            .all()
        )
        group = next((g for g in groups if g.slots_filled < g.max_slots), None)
        if group is None:
            if len(groups) >= package_period.stock:
                raise TransactionError("Slot patungan sudah penuh")
            group = QurbanSharedGroup(
                package_period_id=package_period.id,
                group_number=len(groups) + 1,
                max_slots=max_slots,
                slots_filled=0,
                status="open",
            )
            self.db.add(group)
            self.db.flush()

        group.slots_filled += 1
        if group.slots_filled >= group.max_slots:
            group.status = "full"
        package_period.slots_filled += 1
        return group

    def _next_number(self, column, prefix: str, digits: int) -> str:
        """Random `<prefix>-<digits>` number not yet present in `column`."""
        while True:
            number = f"{prefix}-{self.rng.randint(0, 10**digits - 1):0{digits}d}"
            exists = self.db.query(column).filter(column == number).first()
            if not exists:
                return number
