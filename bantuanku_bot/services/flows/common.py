from dataclasses import dataclass
from typing import Optional

from bantuanku_bot.logging_config import get_logger
from bantuanku_bot.services.catalog_service import Catalog
from bantuanku_bot.services.formatting import fmt
from bantuanku_bot.services.gold_price_service import GoldPriceService
from bantuanku_bot.services.session_service import Session
from bantuanku_bot.services.transaction_service import (
    SavingsRecord,
    SavingsRequest,
    TransactionFacade,
    TransactionRecord,
    TransactionRequest,
)

logger = get_logger("flows")

MSG_CANCELLED = "Proses dibatalkan. Silakan ketik pesan baru jika membutuhkan bantuan."
MSG_NOT_REGISTERED = (
    "Maaf, Anda belum terdaftar sebagai donatur. "
    "Silakan daftar terlebih dahulu dengan mengirimkan nama lengkap dan email Anda."
)
MSG_FLOW_ERROR = "Maaf, terjadi kesalahan. Silakan mulai ulang."
MSG_CREATE_FAILED = "Gagal membuat transaksi. Silakan coba lagi beberapa saat lagi atau hubungi admin."
MSG_CONFIRM_REPROMPT = "Ketik *Ya* untuk melanjutkan pembayaran atau *Batal* untuk membatalkan."
MSG_NEW_MESSAGE_HINT = "Silakan ketik pesan baru jika membutuhkan bantuan."
CANCEL_HINT = "Ketik *batal* untuk membatalkan."

PAYMENT_CHOICES = [
    "Silakan pilih metode pembayaran:",
    "- Ketik *Transfer Bank* untuk info rekening",
    "- Ketik *QRIS* untuk pembayaran via QR Code",
]

DEFAULT_DONOR_NAME = "Hamba Allah"


@dataclass
class FlowContext:
    """Everything a flow step may touch besides its own state."""

    session: Session
    catalog: Catalog
    facade: TransactionFacade
    gold_prices: GoldPriceService
    frontend_url: str = ""

    @property
    def donor_name(self) -> str:
        return self.session.donor_name or self.session.profile_name or DEFAULT_DONOR_NAME

    def end(self) -> None:
        self.session.end_flow()

    def create_transaction(self, request: TransactionRequest) -> Optional[TransactionRecord]:
        try:
            return self.facade.create(request)
        except Exception as e:
            logger.error(
                "Transaction create failed",
                extra={"context": {"phone": self.session.phone, "product_type": request.product_type, "error": str(e)}},
                exc_info=True,
            )
            return None

    def open_savings(self, request: SavingsRequest) -> Optional[SavingsRecord]:
        try:
            return self.facade.open_savings(request)
        except Exception as e:
            logger.error(
                "Savings open failed",
                extra={"context": {"phone": self.session.phone, "error": str(e)}},
                exc_info=True,
            )
            return None

    def invoice_url(self, transaction_id: str) -> str:
        if not self.frontend_url:
            return ""
        return f"{self.frontend_url.rstrip('/')}/invoice/{transaction_id}"


def numbered(options: list[str]) -> list[str]:
    return [f"{i}. {option}" for i, option in enumerate(options, start=1)]


def transaction_summary(ctx: FlowContext, title: str, record: TransactionRecord, details: list[str]) -> str:
    """Success message shared by every flow that creates a transaction."""
    lines = [
        f"*{title}*",
        "",
        f"No. Transaksi: {record.transaction_number}",
        *details,
        f"Nominal: Rp {fmt(record.total_amount)}",
    ]
    if record.unique_code:
        lines.append(f"Kode Unik: {record.unique_code}")
    lines.append(f"*Total Transfer: Rp {fmt(record.transfer_amount)}*")
    lines.append("Status: Menunggu Pembayaran")

    invoice_url = ctx.invoice_url(record.id)
    if invoice_url:
        lines.extend(["", f"Link Invoice: {invoice_url}"])

    lines.extend(["", *PAYMENT_CHOICES])
    return "\n".join(lines)
