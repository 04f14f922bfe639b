"""Typed flow state.

Each flow type has its own dataclass carrying only the answers that flow asks
for, and its own step enum. VALID_TRANSITIONS lists the legal step moves; flow
handlers move through `advance()` so an impossible jump fails loudly instead of
leaving the session in a step nobody handles.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from bantuanku_bot.services.catalog_service import PackageOption, PeriodOption, SavingsOption, ZakatProgram


class FlowType(str, Enum):
    ZAKAT = "zakat"
    DONATION = "donation"
    FIDYAH = "fidyah"
    QURBAN = "qurban"
    QURBAN_SAVINGS = "qurban_savings"
    QURBAN_SAVINGS_DEPOSIT = "qurban_savings_deposit"


class ZakatStep(str, Enum):
    SELECT_TYPE = "select_type"
    SELECT_PROGRAM = "select_program"
    ASK_DATA = "ask_data"
    ASK_DATA_HUTANG = "ask_data_hutang"
    ASK_DATA_IRIGASI = "ask_data_irigasi"
    ASK_DATA_BISNIS_KEUNTUNGAN = "ask_data_bisnis_keuntungan"
    ASK_DATA_BISNIS_PIUTANG = "ask_data_bisnis_piutang"
    ASK_DATA_BISNIS_HUTANG = "ask_data_bisnis_hutang"
    ASK_ON_BEHALF = "ask_on_behalf"
    CONFIRM = "confirm"


class DonationStep(str, Enum):
    ASK_AMOUNT = "ask_amount"
    CONFIRM = "confirm"


class FidyahStep(str, Enum):
    ASK_PERSON_COUNT = "ask_person_count"
    ASK_DAY_COUNT = "ask_day_count"
    ASK_ON_BEHALF = "ask_on_behalf"
    CONFIRM = "confirm"


class QurbanStep(str, Enum):
    SELECT_PERIOD = "select_period"
    SELECT_PACKAGE = "select_package"
    ASK_QUANTITY = "ask_quantity"
    ASK_ON_BEHALF = "ask_on_behalf"
    CONFIRM = "confirm"


class SavingsStep(str, Enum):
    SELECT_PERIOD = "select_period"
    SELECT_PACKAGE = "select_package"
    ASK_FREQUENCY = "ask_frequency"
    ASK_INSTALLMENT_COUNT = "ask_installment_count"
    ASK_INSTALLMENT_DAY = "ask_installment_day"
    CONFIRM = "confirm"


class DepositStep(str, Enum):
    SHOW_SAVINGS = "show_savings"
    SELECT_SAVINGS = "select_savings"
    ASK_AMOUNT = "ask_amount"


VALID_TRANSITIONS: dict[Enum, set[Enum]] = {
    ZakatStep.SELECT_TYPE: {ZakatStep.SELECT_PROGRAM, ZakatStep.ASK_DATA},
    ZakatStep.SELECT_PROGRAM: {ZakatStep.ASK_DATA},
    ZakatStep.ASK_DATA: {
        ZakatStep.ASK_ON_BEHALF,
        ZakatStep.ASK_DATA_HUTANG,
        ZakatStep.ASK_DATA_IRIGASI,
        ZakatStep.ASK_DATA_BISNIS_KEUNTUNGAN,
        ZakatStep.CONFIRM,
    },
    ZakatStep.ASK_DATA_HUTANG: {ZakatStep.CONFIRM},
    ZakatStep.ASK_DATA_IRIGASI: {ZakatStep.CONFIRM},
    ZakatStep.ASK_DATA_BISNIS_KEUNTUNGAN: {ZakatStep.ASK_DATA_BISNIS_PIUTANG},
    ZakatStep.ASK_DATA_BISNIS_PIUTANG: {ZakatStep.ASK_DATA_BISNIS_HUTANG},
    ZakatStep.ASK_DATA_BISNIS_HUTANG: {ZakatStep.CONFIRM},
    ZakatStep.ASK_ON_BEHALF: {ZakatStep.CONFIRM},
    DonationStep.ASK_AMOUNT: {DonationStep.CONFIRM},
    FidyahStep.ASK_PERSON_COUNT: {FidyahStep.ASK_DAY_COUNT},
    FidyahStep.ASK_DAY_COUNT: {FidyahStep.ASK_ON_BEHALF},
    FidyahStep.ASK_ON_BEHALF: {FidyahStep.CONFIRM},
    QurbanStep.SELECT_PERIOD: {QurbanStep.SELECT_PACKAGE},
    QurbanStep.SELECT_PACKAGE: {QurbanStep.ASK_QUANTITY, QurbanStep.ASK_ON_BEHALF},
    QurbanStep.ASK_QUANTITY: {QurbanStep.ASK_ON_BEHALF},
    QurbanStep.ASK_ON_BEHALF: {QurbanStep.CONFIRM},
    SavingsStep.SELECT_PERIOD: {SavingsStep.SELECT_PACKAGE},
    SavingsStep.SELECT_PACKAGE: {SavingsStep.ASK_FREQUENCY},
    SavingsStep.ASK_FREQUENCY: {SavingsStep.ASK_INSTALLMENT_COUNT},
    SavingsStep.ASK_INSTALLMENT_COUNT: {SavingsStep.ASK_INSTALLMENT_DAY},
    SavingsStep.ASK_INSTALLMENT_DAY: {SavingsStep.CONFIRM},
    DepositStep.SHOW_SAVINGS: {DepositStep.SELECT_SAVINGS, DepositStep.ASK_AMOUNT},
    DepositStep.SELECT_SAVINGS: {DepositStep.ASK_AMOUNT},
}


class InvalidTransitionError(Exception):
    def __init__(self, from_step: Enum, to_step: Enum):
        self.from_step = from_step
        self.to_step = to_step
        super().__init__(f"Invalid transition: {from_step.value} -> {to_step.value}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _FlowBase:
    type: ClassVar[FlowType]
    money_step: ClassVar[Enum]

    @property
    def data(self) -> dict[str, Any]:
        """Collected answers, for logs and the admin conversation view."""
        values = asdict(self)
        values.pop("step", None)
        values.pop("started_at", None)
        return values

    @property
    def at_money_step(self) -> bool:
        return self.step == self.money_step


@dataclass
class ZakatFlow(_FlowBase):
    type: ClassVar[FlowType] = FlowType.ZAKAT
    money_step: ClassVar[Enum] = ZakatStep.CONFIRM

    step: ZakatStep = ZakatStep.SELECT_TYPE
    started_at: datetime = field(default_factory=_now)
    calculator_type: Optional[str] = None
    type_options: list[str] = field(default_factory=list)
    program_options: list[ZakatProgram] = field(default_factory=list)
    program: Optional[ZakatProgram] = None
    jiwa: Optional[int] = None
    total_harta: Optional[int] = None
    hutang: Optional[int] = None
    income: Optional[int] = None
    hasil_panen: Optional[int] = None
    irrigated: Optional[bool] = None
    nilai_ternak: Optional[int] = None
    modal_usaha: Optional[int] = None
    keuntungan: Optional[int] = None
    piutang: Optional[int] = None
    on_behalf_of: Optional[str] = None
    calculated_amount: Optional[int] = None
    explanation: str = ""


@dataclass
class DonationFlow(_FlowBase):
    type: ClassVar[FlowType] = FlowType.DONATION
    money_step: ClassVar[Enum] = DonationStep.CONFIRM

    campaign_id: str = ""
    campaign_name: str = ""
    step: DonationStep = DonationStep.ASK_AMOUNT
    started_at: datetime = field(default_factory=_now)
    amount: Optional[int] = None


@dataclass
class FidyahFlow(_FlowBase):
    type: ClassVar[FlowType] = FlowType.FIDYAH
    money_step: ClassVar[Enum] = FidyahStep.CONFIRM

    campaign_id: str = ""
    campaign_name: str = ""
    step: FidyahStep = FidyahStep.ASK_PERSON_COUNT
    started_at: datetime = field(default_factory=_now)
    person_count: Optional[int] = None
    day_count: Optional[int] = None
    on_behalf_of: Optional[str] = None
    price_per_day: Optional[int] = None
    total_amount: Optional[int] = None


@dataclass
class QurbanFlow(_FlowBase):
    type: ClassVar[FlowType] = FlowType.QURBAN
    money_step: ClassVar[Enum] = QurbanStep.CONFIRM

    step: QurbanStep = QurbanStep.SELECT_PERIOD
    started_at: datetime = field(default_factory=_now)
    period_options: list[PeriodOption] = field(default_factory=list)
    period: Optional[PeriodOption] = None
    package_options: list[PackageOption] = field(default_factory=list)
    package: Optional[PackageOption] = None
    quantity: Optional[int] = None
    on_behalf_of: Optional[str] = None
    admin_fee_per_unit: int = 0
    total_amount: Optional[int] = None


@dataclass
class QurbanSavingsFlow(_FlowBase):
    type: ClassVar[FlowType] = FlowType.QURBAN_SAVINGS
    money_step: ClassVar[Enum] = SavingsStep.CONFIRM

    step: SavingsStep = SavingsStep.SELECT_PERIOD
    started_at: datetime = field(default_factory=_now)
    period_options: list[PeriodOption] = field(default_factory=list)
    period: Optional[PeriodOption] = None
    package_options: list[PackageOption] = field(default_factory=list)
    package: Optional[PackageOption] = None
    admin_fee: int = 0
    target_amount: Optional[int] = None
    frequency: Optional[str] = None
    installment_count: Optional[int] = None
    installment_amount: Optional[int] = None
    installment_day: Optional[int] = None


@dataclass
class SavingsDepositFlow(_FlowBase):
    type: ClassVar[FlowType] = FlowType.QURBAN_SAVINGS_DEPOSIT
    money_step: ClassVar[Enum] = DepositStep.ASK_AMOUNT

    step: DepositStep = DepositStep.SHOW_SAVINGS
    started_at: datetime = field(default_factory=_now)
    savings_options: list[SavingsOption] = field(default_factory=list)
    savings: Optional[SavingsOption] = None


FlowState = Union[ZakatFlow, DonationFlow, FidyahFlow, QurbanFlow, QurbanSavingsFlow, SavingsDepositFlow]


def can_advance(from_step: Enum, to_step: Enum) -> bool:
    return to_step in VALID_TRANSITIONS.get(from_step, set())


def advance(flow: FlowState, to_step: Enum) -> None:
    """Move `flow` to `to_step`. Raises InvalidTransitionError if the move is not allowed."""
    if not can_advance(flow.step, to_step):
        raise InvalidTransitionError(flow.step, to_step)
    flow.step = to_step
