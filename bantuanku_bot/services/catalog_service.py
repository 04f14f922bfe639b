"""Read-side lookups used by flows and tools."""

from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import desc, or_
from sqlalchemy.orm import Session

from bantuanku_bot.logging_config import get_logger
from bantuanku_bot.models import (
    Campaign,
    Donatur,
    QurbanPackage,
    QurbanPackagePeriod,
    QurbanPeriod,
    QurbanSavings,
    Setting,
    Transaction,
    ZakatPeriod,
    ZakatType,
)
from bantuanku_bot.services.formatting import normalize_calculator_type, normalize_phone
from bantuanku_bot.services.result import Result
from bantuanku_bot.services.transaction_service import TransactionRecord, transaction_record_from_model

logger = get_logger("catalog_service")

SETTING_FITRAH_AMOUNT = "zakat_fitrah_amount"
SETTING_GOLD_PRICE = "zakat_gold_price"
SETTING_NISAB_GOLD = "zakat_nisab_gold"
SETTING_MAAL_PERCENTAGE = "zakat_mal_percentage"
SETTING_PROFESSION_PERCENTAGE = "zakat_profession_percentage"
SETTING_FIDYAH_PER_DAY = "fidyah_amount_per_day"
SETTING_QURBAN_COW_FEE = "amil_qurban_sapi_fee"
SETTING_QURBAN_GOAT_FEE = "amil_qurban_perekor_fee"
SETTING_BANK_ACCOUNTS = "payment_bank_accounts"
SETTING_QRIS_ACCOUNTS = "payment_qris_accounts"


@dataclass
class CampaignInfo:
    id: str
    title: str
    status: str
    pillar: Optional[str] = None
    goal: int = 0
    collected: int = 0
    donor_count: int = 0
    description: Optional[str] = None

    @property
    def progress_pct(self) -> int:
        if not self.goal:
            return 0
        return round((self.collected or 0) / self.goal * 100)

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass
class ZakatProgram:
    id: str
    name: str
    calculator_type: str
    description: Optional[str] = None
    fitrah_amount: Optional[int] = None


@dataclass
class ZakatPeriodInfo:
    id: str
    name: str
    zakat_type_name: str


@dataclass
class PeriodOption:
    id: str
    name: str


@dataclass
class PackageOption:
    package_period_id: str
    package_id: str
    period_id: str
    name: str
    animal_type: str
    package_type: str
    price: int
    stock: int
    stock_sold: int = 0
    slots_filled: int = 0
    max_slots: Optional[int] = None

    @property
    def is_shared(self) -> bool:
        return self.package_type == "shared"

    @property
    def slots_per_animal(self) -> int:
        return self.max_slots or 7

    @property
    def available_stock(self) -> int:
        return self.stock - self.stock_sold

    @property
    def available_slots(self) -> int:
        return self.stock * self.slots_per_animal - self.slots_filled

    @property
    def has_availability(self) -> bool:
        if self.is_shared:
            return self.available_slots > 0
        return self.available_stock > 0


@dataclass
class SavingsOption:
    id: str
    savings_number: str
    package_name: str
    target_amount: int
    current_amount: int
    installment_amount: int
    installment_frequency: str
    target_package_period_id: str
    installment_count: int = 0

    @property
    def remaining(self) -> int:
        return max(self.target_amount - self.current_amount, 0)


@dataclass
class DonaturInfo:
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    total_donations: int = 0
    total_amount: int = 0


class Catalog(Protocol):
    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]: ...

    def get_campaign(self, campaign_id: str) -> Optional[CampaignInfo]: ...

    def list_zakat_programs(self, calculator_type: Optional[str] = None) -> list[ZakatProgram]: ...

    def get_active_zakat_period(self, zakat_type_id: str) -> Optional[ZakatPeriodInfo]: ...

    def list_active_qurban_periods(self) -> list[PeriodOption]: ...

    def list_qurban_packages(self, period_id: str) -> list[PackageOption]: ...

    def list_active_savings(self, phone: str, donatur_id: Optional[str] = None) -> list[SavingsOption]: ...


def setting_number(catalog: Catalog, key: str, default: float) -> float:
    raw = catalog.get_setting(key)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning(f"Setting {key} is not numeric: {raw!r}")
        return default


def setting_int(catalog: Catalog, key: str, default: int) -> int:
    return int(setting_number(catalog, key, default))


def _phone_tail(phone: str) -> str:
    return normalize_phone(phone)[-10:]


class CatalogService:
    """SQLAlchemy-backed Catalog plus the lookups behind the read-only tools."""

    def __init__(self, db: Session):
        self.db = db

    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]:
        row = self.db.get(Setting, key)
        if row is None or row.value in (None, ""):
            return default
        return row.value

    def search_campaigns(self, query: Optional[str] = None, limit: int = 20) -> list[CampaignInfo]:
        q = self.db.query(Campaign).filter(Campaign.status == "active")
        if query:
            q = q.filter(Campaign.title.ilike(f"%{query}%"))
        rows = q.order_by(desc(Campaign.donor_count)).limit(limit).all()
        return [self._campaign_info(row) for row in rows]

    def get_campaign(self, campaign_id: str) -> Optional[CampaignInfo]:
        if not campaign_id:
            return None
        row = self.db.get(Campaign, campaign_id)
        return self._campaign_info(row) if row else None

    def list_zakat_programs(self, calculator_type: Optional[str] = None) -> list[ZakatProgram]:
        q = self.db.query(ZakatType).filter(ZakatType.is_active.is_(True))
        if calculator_type:
            bare = normalize_calculator_type(calculator_type)
            prefixed = f"zakat-{bare}"
            q = q.filter(
                or_(
                    ZakatType.calculator_type.in_([bare, prefixed]),
                    ZakatType.slug.in_([bare, prefixed]),
                )
            )
        rows = q.order_by(ZakatType.name).all()
        return [
            ZakatProgram(
                id=row.id,
                name=row.name,
                calculator_type=normalize_calculator_type(row.calculator_type or row.slug),
                description=row.description,
                fitrah_amount=row.fitrah_amount,
            )
            for row in rows
        ]

    def get_active_zakat_period(self, zakat_type_id: str) -> Optional[ZakatPeriodInfo]:
        period = (
            self.db.query(ZakatPeriod)
            .filter(ZakatPeriod.zakat_type_id == zakat_type_id, ZakatPeriod.status == "active")
            .first()
        )
        if not period:
            return None
        type_name = period.zakat_type.name if period.zakat_type else period.name
        return ZakatPeriodInfo(id=period.id, name=period.name, zakat_type_name=type_name)

    def list_active_qurban_periods(self) -> list[PeriodOption]:
        rows = (
            self.db.query(QurbanPeriod)
            .filter(QurbanPeriod.status == "active")
            .order_by(QurbanPeriod.gregorian_year, QurbanPeriod.name)
            .all()
        )
        return [PeriodOption(id=row.id, name=row.name) for row in rows]

    def list_qurban_packages(self, period_id: str) -> list[PackageOption]:
        rows = (
            self.db.query(QurbanPackagePeriod, QurbanPackage)
            .join(QurbanPackage, QurbanPackagePeriod.package_id == QurbanPackage.id)
            .filter(
                QurbanPackagePeriod.period_id == period_id,
                QurbanPackagePeriod.is_available.is_(True),
                QurbanPackage.is_available.is_(True),
            )
            .order_by(QurbanPackage.animal_type, QurbanPackagePeriod.price)
            .all()
        )
        return [
            PackageOption(
                package_period_id=pp.id,
                package_id=package.id,
                period_id=pp.period_id,
                name=package.name,
                animal_type=package.animal_type,
                package_type=package.package_type,
                price=pp.price,
                stock=pp.stock,
                stock_sold=pp.stock_sold or 0,
                slots_filled=pp.slots_filled or 0,
                max_slots=package.max_slots,
            )
            for pp, package in rows
        ]

    def list_active_savings(self, phone: str, donatur_id: Optional[str] = None) -> list[SavingsOption]:
        tail = _phone_tail(phone)
        if not tail:
            return []
        conditions = [QurbanSavings.donor_phone.like(f"%{tail}%")]
        if donatur_id:
            conditions.append(QurbanSavings.donatur_id == donatur_id)
        rows = (
            self.db.query(QurbanSavings)
            .filter(QurbanSavings.status == "active", or_(*conditions))
            .order_by(desc(QurbanSavings.created_at))
            .all()
        )
        return [
            SavingsOption(
                id=row.id,
                savings_number=row.savings_number,
                package_name=row.package_period.package.name if row.package_period else "-",
                target_amount=row.target_amount,
                current_amount=row.current_amount or 0,
                installment_amount=row.installment_amount,
                installment_frequency=row.installment_frequency,
                target_package_period_id=row.target_package_period_id,
                installment_count=row.installment_count or 0,
            )
            for row in rows
        ]

    def find_transactions(
        self,
        *,
        transaction_number: Optional[str] = None,
        phone: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 5,
    ) -> list[TransactionRecord]:
        q = self.db.query(Transaction)
        if transaction_number:
            q = q.filter(Transaction.transaction_number.ilike(f"%{transaction_number}%"))
        elif phone:
            q = q.filter(Transaction.donor_phone.like(f"%{_phone_tail(phone)}%"))
        else:
            return []
        if status:
            q = q.filter(Transaction.payment_status == status)
        rows = q.order_by(desc(Transaction.created_at)).limit(limit).all()
        return [transaction_record_from_model(row) for row in rows]

    def get_transaction(self, transaction_id: str) -> Optional[TransactionRecord]:
        if not transaction_id:
            return None
        row = self.db.get(Transaction, transaction_id)
        return transaction_record_from_model(row) if row else None

    def find_donatur_by_phone(self, phone: str) -> Optional[DonaturInfo]:
        tail = _phone_tail(phone)
        if not tail:
            return None
        row = (
            self.db.query(Donatur)
            .filter(or_(Donatur.phone.like(f"%{tail}%"), Donatur.whatsapp_number.like(f"%{tail}%")))
            .first()
        )
        return self._donatur_info(row) if row else None

    def register_donatur(self, name: str, email: str, phone: str) -> Result[tuple[DonaturInfo, bool]]:
        """Create a donor, or reuse the existing one registered with this phone.

        An email that already belongs to a donor with a different phone is
        refused rather than bound to the caller.
        """
        normalized_email = email.strip().lower()
        normalized_phone = normalize_phone(phone)
        tail = _phone_tail(phone)
        if not tail:
            return Result.refused("missing_phone", "Nomor WhatsApp donatur tidak valid.")
        existing = (
            self.db.query(Donatur)
            .filter(
                or_(
                    Donatur.email == normalized_email,
                    Donatur.phone == normalized_phone,
                    Donatur.whatsapp_number == normalized_phone,
                )
            )
            .first()
        )
        if existing:
            owner_tails = {_phone_tail(existing.phone or ""), _phone_tail(existing.whatsapp_number or "")}
            if tail not in owner_tails:
                logger.warning("Registration with another donor's email refused", extra={"context": {"phone": normalized_phone}})
                return Result.refused(
                    "email_registered",
                    "Email ini sudah terdaftar atas nomor WhatsApp lain. Minta donatur memakai email lain.",
                )
            return Result.success((self._donatur_info(existing), False))

        row = Donatur(
            name=name.strip(),
            email=normalized_email,
            phone=normalized_phone,
            whatsapp_number=normalized_phone,
        )
        try:
            self.db.add(row)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(row)
        logger.info("Donatur registered", extra={"context": {"donatur_id": row.id}})
        return Result.success((self._donatur_info(row), True))

    @staticmethod
    def _campaign_info(row: Campaign) -> CampaignInfo:
        return CampaignInfo(
            id=row.id,
            title=row.title,
            status=row.status,
            pillar=row.pillar,
            goal=row.goal or 0,
            collected=row.collected or 0,
            donor_count=row.donor_count or 0,
            description=row.description,
        )

    @staticmethod
    def _donatur_info(row: Donatur) -> DonaturInfo:
        return DonaturInfo(
            id=row.id,
            name=row.name,
            email=row.email,
            phone=row.phone,
            total_donations=row.total_donations or 0,
            total_amount=row.total_amount or 0,
        )
