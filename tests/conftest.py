import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Optional  # noqa: E402
from unittest.mock import AsyncMock, Mock  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import bantuanku_bot.models  # noqa: E402,F401
from bantuanku_bot.database import Base  # noqa: E402
from bantuanku_bot.services.catalog_service import (  # noqa: E402
    CampaignInfo,
    PackageOption,
    PeriodOption,
    SavingsOption,
    ZakatPeriodInfo,
    ZakatProgram,
)
from bantuanku_bot.services.flows.common import FlowContext  # noqa: E402
from bantuanku_bot.services.session_service import Session  # noqa: E402
from bantuanku_bot.services.transaction_service import (  # noqa: E402
    ProductInfo,
    SavingsRecord,
    SavingsRequest,
    TransactionError,
    TransactionRecord,
    TransactionRequest,
)

DONOR_PHONE = "6281234567890"


class FakeCatalog:
    """In-memory Catalog with a small, fixed product set."""

    def __init__(self):
        self.settings: dict[str, str] = {}
        self.campaigns = {
            "camp-1": CampaignInfo(id="camp-1", title="Bantu Sekolah Pelosok", status="active", pillar="sedekah"),
            "camp-closed": CampaignInfo(id="camp-closed", title="Program Lama", status="closed"),
            "fidyah-1": CampaignInfo(id="fidyah-1", title="Fidyah Ramadhan", status="active", pillar="fidyah"),
        }
        self.zakat_programs = [
            ZakatProgram(id="zt-fitrah", name="Zakat Fitrah", calculator_type="fitrah"),
            ZakatProgram(id="zt-maal", name="Zakat Maal", calculator_type="maal"),
            ZakatProgram(id="zt-penghasilan", name="Zakat Penghasilan", calculator_type="penghasilan"),
            ZakatProgram(id="zt-pertanian", name="Zakat Pertanian", calculator_type="pertanian"),
            ZakatProgram(id="zt-bisnis", name="Zakat Bisnis", calculator_type="bisnis"),
        ]
        self.zakat_periods = {
            program.id: ZakatPeriodInfo(id=f"period-{program.id}", name="1447 H", zakat_type_name=program.name)
            for program in self.zakat_programs
        }
        self.qurban_periods = [PeriodOption(id="qp-1447", name="Idul Adha 1447 H")]
        self.packages = {
            "qp-1447": [
                PackageOption(
                    package_period_id="pp-goat",
                    package_id="pkg-goat",
                    period_id="qp-1447",
                    name="Kambing Standar",
                    animal_type="goat",
                    package_type="individual",
                    price=3_000_000,
                    stock=10,
                    stock_sold=2,
                ),
                PackageOption(
                    package_period_id="pp-cow-shared",
                    package_id="pkg-cow-shared",
                    period_id="qp-1447",
                    name="Sapi Patungan",
                    animal_type="cow",
                    package_type="shared",
                    price=3_500_000,
                    stock=2,
                    slots_filled=3,
                    max_slots=7,
                ),
                PackageOption(
                    package_period_id="pp-goat-soldout",
                    package_id="pkg-goat-premium",
                    period_id="qp-1447",
                    name="Kambing Premium",
                    animal_type="goat",
                    package_type="individual",
                    price=5_000_000,
                    stock=3,
                    stock_sold=3,
                ),
            ]
        }
        self.savings: list[SavingsOption] = []

    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.settings.get(key, default)

    def get_campaign(self, campaign_id: str) -> Optional[CampaignInfo]:
        return self.campaigns.get(campaign_id)

    def list_zakat_programs(self, calculator_type: Optional[str] = None) -> list[ZakatProgram]:
        if not calculator_type:
            return list(self.zakat_programs)
        return [p for p in self.zakat_programs if p.calculator_type == calculator_type]

    def get_active_zakat_period(self, zakat_type_id: str) -> Optional[ZakatPeriodInfo]:
        return self.zakat_periods.get(zakat_type_id)

    def list_active_qurban_periods(self) -> list[PeriodOption]:
        return list(self.qurban_periods)

    def list_qurban_packages(self, period_id: str) -> list[PackageOption]:
        return list(self.packages.get(period_id, []))

    def list_active_savings(self, phone: str, donatur_id: Optional[str] = None) -> list[SavingsOption]:
        return list(self.savings)


class FakeFacade:
    """Records every request; returns deterministic records."""

    def __init__(self, unique_code: int = 123):
        self.unique_code = unique_code
        self.created: list[TransactionRequest] = []
        self.savings_opened: list[SavingsRequest] = []
        self.fail = False

    def create(self, request: TransactionRequest) -> TransactionRecord:
        if self.fail:
            raise TransactionError("database unavailable")
        self.created.append(request)
        subtotal = request.unit_price * request.quantity
        return TransactionRecord(
            id=f"tx-{len(self.created)}",
            transaction_number=f"TRX-20260301-{len(self.created):05d}",
            product_type=request.product_type,
            product_id=request.product_id,
            product_name="Produk",
            quantity=request.quantity,
            unit_price=request.unit_price,
            admin_fee=request.admin_fee,
            total_amount=subtotal + request.admin_fee,
            unique_code=self.unique_code if request.include_unique_code else 0,
        )

    def get_product(self, product_type: str, product_id: str) -> ProductInfo:
        return ProductInfo(name="Produk")

    def open_savings(self, request: SavingsRequest) -> SavingsRecord:
        if self.fail:
            raise TransactionError("database unavailable")
        self.savings_opened.append(request)
        return SavingsRecord(
            id="sav-1",
            savings_number="SAV-QBN-2026-00001",
            target_amount=request.target_amount,
            installment_amount=request.installment_amount,
            installment_count=request.installment_count,
            installment_frequency=request.installment_frequency,
            installment_day=request.installment_day,
        )


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def facade():
    return FakeFacade()


@pytest.fixture
def gold_prices():
    service = Mock()
    service.get_price_per_gram = AsyncMock(return_value=1_000_000)
    return service


@pytest.fixture
def session():
    return Session(
        phone=DONOR_PHONE,
        profile_name="Ahmad WA",
        donatur_id="don-1",
        donor_name="Ahmad",
        donor_email="ahmad@example.com",
    )


@pytest.fixture
def guest_session():
    return Session(phone=DONOR_PHONE, profile_name="Tamu")


@pytest.fixture
def ctx(session, catalog, facade, gold_prices):
    return FlowContext(
        session=session,
        catalog=catalog,
        facade=facade,
        gold_prices=gold_prices,
        frontend_url="https://bantuanku.test",
    )


@pytest.fixture
def db_session():
    """SQLite database with the full schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("LLM_API_KEY", "test-key")
    monkeypatch.setenv("DATABASE_URL", "sqlite://")


@pytest.fixture
def seeded_db(db_session):
    """Schema plus one row of each product the tools and flows read."""
    from bantuanku_bot.models import (
        Campaign,
        Donatur,
        QurbanPackage,
        QurbanPackagePeriod,
        QurbanPeriod,
        Setting,
        ZakatPeriod,
        ZakatType,
    )

    db_session.add_all(
        [
            Campaign(
                id="camp-1",
                title="Bantu Sekolah Pelosok",
                pillar="sedekah",
                goal=10_000_000,
                collected=2_500_000,
                donor_count=12,
                status="active",
            ),
            Campaign(id="camp-masjid", title="Renovasi Masjid", pillar="wakaf", status="active", donor_count=3),
            Campaign(id="camp-closed", title="Program Sekolah Lama", status="closed"),
            Campaign(id="fidyah-1", title="Fidyah Ramadhan", pillar="fidyah", status="active"),
            ZakatType(id="zt-fitrah", name="Zakat Fitrah", slug="zakat-fitrah", calculator_type="zakat-fitrah"),
            ZakatType(id="zt-maal", name="Zakat Maal", slug="zakat-maal", calculator_type="maal"),
            ZakatType(id="zt-old", name="Zakat Lama", slug="lama", calculator_type="maal", is_active=False),
            ZakatPeriod(id="zp-fitrah", zakat_type_id="zt-fitrah", name="Ramadhan 1447 H", status="active"),
            ZakatPeriod(id="zp-maal", zakat_type_id="zt-maal", name="1447 H", status="active"),
            QurbanPeriod(id="qp-1447", name="Idul Adha 1447 H", gregorian_year=2026, status="active"),
            QurbanPackage(id="pkg-goat", name="Kambing Standar", animal_type="goat", package_type="individual"),
            QurbanPackage(id="pkg-cow", name="Sapi Patungan", animal_type="cow", package_type="shared", max_slots=7),
            QurbanPackagePeriod(id="pp-goat", package_id="pkg-goat", period_id="qp-1447", price=3_000_000, stock=5, stock_sold=1),
            QurbanPackagePeriod(id="pp-cow", package_id="pkg-cow", period_id="qp-1447", price=3_500_000, stock=1),
            Donatur(id="don-1", name="Ahmad", email="ahmad@example.com", phone="081234567890", whatsapp_number="6281234567890"),
            Setting(key="zakat_fitrah_amount", value="45000", category="zakat"),
        ]
    )
    db_session.commit()
    return db_session
