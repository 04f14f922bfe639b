"""Local implementations of the model's read-only and payment tools.

Every tool returns a plain Indonesian string that is fed back to the model.
Expected failures (missing parameters, unknown ids) are reported in that
string; only unexpected errors propagate to the orchestrator.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Optional

from bantuanku_bot.logging_config import get_logger
from bantuanku_bot.services.catalog_service import (
    SETTING_BANK_ACCOUNTS,
    SETTING_QRIS_ACCOUNTS,
    CatalogService,
)
from bantuanku_bot.services.formatting import (
    PAYMENT_STATUS_LABELS,
    calculator_label,
    fmt,
    normalize_phone,
    strip_html,
    truncate_text,
)
from bantuanku_bot.services.llm.base import ImageAttachment
from bantuanku_bot.services.parsers import parse_amount
from bantuanku_bot.services.session_service import Session
from bantuanku_bot.services.tools import ToolName
from bantuanku_bot.services.transaction_service import PaymentRecord, TransactionRecord, TransactionService
from bantuanku_bot.services.whatsapp_service import MessagingGateway

logger = get_logger("tool_executor")

PRODUCT_LABELS = {"campaign": "Donasi Campaign", "zakat": "Zakat", "qurban": "Qurban"}
GENERAL_PROGRAM = "general"
RESULT_OTHER_PHONE = "Status hanya dapat dicek untuk nomor WhatsApp donatur yang sedang chat."


def text_arg(args: dict, key: str) -> str:
    value = (args or {}).get(key)
    return str(value).strip() if value is not None else ""


def amount_arg(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(round(value)) if value > 0 else None
    return parse_amount(str(value)) if value is not None else None


def _payment_date(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        logger.warning(f"Unparseable payment date from model: {value!r}")
        return None


def normalize_transaction_number(value: str) -> str:
    number = value.strip().upper()
    if number.startswith("RX-"):
        number = "T" + number
    return number


def payment_receipt(payment: PaymentRecord) -> str:
    return "\n".join(
        [
            "Bukti pembayaran berhasil diterima!",
            f"No. Transaksi: {payment.transaction_number}",
            f"Nominal Konfirmasi: Rp {fmt(payment.amount)}",
            f"Total Tagihan: Rp {fmt(payment.transfer_amount)}",
            "Bukti Transfer: Tersimpan" if payment.has_proof else "Bukti Transfer: Gambar tidak tersedia",
            "Status: Menunggu Verifikasi Admin",
        ]
    )


def program_for_pillar(pillar: Optional[str]) -> str:
    pillar = (pillar or "").lower()
    if "wakaf" in pillar:
        return "wakaf"
    if "sedekah" in pillar or "shodaqoh" in pillar or "sodakoh" in pillar:
        return "sedekah"
    if "infaq" in pillar or "infak" in pillar:
        return "infaq"
    return GENERAL_PROGRAM


def filter_bank_accounts(accounts: list[dict], program: str) -> list[dict]:
    """Accounts tagged with `program`, else the general ones, else all of them."""

    def programs_of(account: dict) -> list[str]:
        programs = account.get("programs")
        return programs if isinstance(programs, list) and programs else [GENERAL_PROGRAM]

    matched = [a for a in accounts if program in programs_of(a)]
    if not matched:
        matched = [a for a in accounts if GENERAL_PROGRAM in programs_of(a)]
    return matched or accounts


class ToolExecutor:
    def __init__(
        self,
        catalog: CatalogService,
        transactions: TransactionService,
        gateway: MessagingGateway,
        session: Session,
        image: Optional[ImageAttachment] = None,
    ):
        self.catalog = catalog
        self.transactions = transactions
        self.gateway = gateway
        self.session = session
        self.image = image
        # Result text of a confirm_payment that succeeded during this turn.
        self.confirmed_payment: Optional[str] = None
        self._handlers = {
            ToolName.SEARCH_CAMPAIGNS: self.search_campaigns,
            ToolName.GET_CAMPAIGN_DETAIL: self.get_campaign_detail,
            ToolName.GET_ZAKAT_MENU: self.get_zakat_menu,
            ToolName.GET_ZAKAT_PROGRAMS: self.get_zakat_programs,
            ToolName.CHECK_TRANSACTION_STATUS: self.check_transaction_status,
            ToolName.CHECK_SAVINGS_STATUS: self.check_savings_status,
            ToolName.GET_BANK_DETAILS: self.get_bank_details,
            ToolName.SEND_QRIS: self.send_qris,
            ToolName.REGISTER_DONATUR: self.register_donatur,
            ToolName.CONFIRM_PAYMENT: self.confirm_payment,
        }

    def handles(self, tool: ToolName) -> bool:
        return tool in self._handlers

    async def execute(self, tool: ToolName, args: dict) -> str:
        handler = self._handlers.get(tool)
        if handler is None:
            return f'Tool "{tool.value}" belum diimplementasikan.'
        logger.debug("Executing tool", extra={"context": {"tool": tool.value, "phone": self.session.phone}})
        return await handler(args or {})

    # Read-only tools

    async def search_campaigns(self, args: dict) -> str:
        campaigns = self.catalog.search_campaigns(text_arg(args, "query") or None)
        if not campaigns:
            return "Tidak ditemukan program yang sesuai dengan pencarian."
        return "\n\n".join(
            f"{i}. *{c.title}*\n"
            f"   Target: Rp {fmt(c.goal)}\n"
            f"   Terkumpul: Rp {fmt(c.collected)} ({c.progress_pct}%)\n"
            f"   ID: {c.id}"
            for i, c in enumerate(campaigns, start=1)
        )

    async def get_campaign_detail(self, args: dict) -> str:
        campaign = self.catalog.get_campaign(text_arg(args, "campaignId"))
        if not campaign:
            return "Program tidak ditemukan."
        return "\n".join(
            [
                f"*{campaign.title}*",
                f"Pilar: {campaign.pillar or '-'}",
                f"Target: Rp {fmt(campaign.goal)}",
                f"Terkumpul: Rp {fmt(campaign.collected)} ({campaign.progress_pct}%)",
                f"Donatur: {campaign.donor_count} orang",
                f"Status: {campaign.status}",
                f"ID: {campaign.id}",
            ]
        )

    async def get_zakat_menu(self, args: dict) -> str:
        programs = self.catalog.list_zakat_programs()
        if not programs:
            return "Belum ada jenis zakat yang tersedia."
        counts: dict[str, int] = {}
        for program in programs:
            counts[program.calculator_type] = counts.get(program.calculator_type, 0) + 1
        return "\n".join(
            f"{i}. {calculator_label(ct)}" + (f" ({count} program)" if count > 1 else "")
            for i, (ct, count) in enumerate(counts.items(), start=1)
        )

    async def get_zakat_programs(self, args: dict) -> str:
        calculator_type = text_arg(args, "calculatorType")
        if not calculator_type:
            return "Parameter calculatorType wajib diisi. Contoh: fitrah, maal, penghasilan."
        programs = self.catalog.list_zakat_programs(calculator_type)
        if not programs:
            return f"Tidak ada program {calculator_label(calculator_type)} yang tersedia saat ini."
        lines = []
        for i, program in enumerate(programs, start=1):
            entry = f"{i}. *{program.name}*"
            description = truncate_text(strip_html(program.description), 80) if program.description else ""
            if description:
                entry += f"\n   {description}"
            entry += f"\n   ID: {program.id}"
            lines.append(entry)
        return "\n\n".join(lines)

    def _own_phone(self, value: str) -> Optional[str]:
        """Digits of the session phone, or None when `value` names another number."""
        own = normalize_phone(self.session.phone)
        phone = normalize_phone(value) or own
        if phone and phone[-10:] != own[-10:]:
            return None
        return phone

    async def check_transaction_status(self, args: dict) -> str:
        number = text_arg(args, "transactionNumber")
        if number:
            records = self.catalog.find_transactions(transaction_number=normalize_transaction_number(number))
        else:
            phone = self._own_phone(text_arg(args, "phone"))
            if phone is None:
                return RESULT_OTHER_PHONE
            if not phone:
                return "Parameter phone atau transactionNumber diperlukan."
            records = self.catalog.find_transactions(phone=phone)

        if not records:
            return "Tidak ditemukan riwayat transaksi."
        return "\n\n".join(
            f"{i}. {tx.transaction_number} - {PRODUCT_LABELS.get(tx.product_type, tx.product_type)}\n"
            f"   ID Transaksi: {tx.id}\n"
            f"   Program: {tx.product_name}\n"
            f"   Total Transfer: Rp {fmt(tx.transfer_amount)} - "
            f"{PAYMENT_STATUS_LABELS.get(tx.payment_status, tx.payment_status)}"
            for i, tx in enumerate(records, start=1)
        )

    async def check_savings_status(self, args: dict) -> str:
        phone = self._own_phone(text_arg(args, "phone"))
        if phone is None:
            return RESULT_OTHER_PHONE
        savings = self.catalog.list_active_savings(phone, self.session.donatur_id)
        if not savings:
            return "Donatur belum memiliki tabungan qurban aktif."
        lines = []
        for i, s in enumerate(savings, start=1):
            pct = round(s.current_amount / s.target_amount * 100) if s.target_amount else 0
            lines.append(
                f"{i}. {s.savings_number} - {s.package_name}\n"
                f"   Terkumpul: Rp {fmt(s.current_amount)} / Rp {fmt(s.target_amount)} ({pct}%)\n"
                f"   Sisa: Rp {fmt(s.remaining)}\n"
                f"   Cicilan: Rp {fmt(s.installment_amount)} "
                f"({'bulanan' if s.installment_frequency == 'monthly' else 'mingguan'})"
            )
        return "\n\n".join(lines)

    # Payment tools

    def _resolve_transaction(self, reference: str, phone: str = "") -> Optional[TransactionRecord]:
        tx = None
        if reference:
            tx = self.catalog.get_transaction(reference)
            if tx is None:
                found = self.catalog.find_transactions(
                    transaction_number=normalize_transaction_number(reference), limit=1
                )
                tx = found[0] if found else None
        if tx is None and normalize_phone(phone):
            found = self.catalog.find_transactions(phone=phone, status="pending", limit=1)
            tx = found[0] if found else None
        return tx

    def _json_setting(self, key: str) -> Optional[list]:
        raw = self.catalog.get_setting(key)
        if not raw:
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning(f"Setting {key} is not valid JSON")
            return []
        return value if isinstance(value, list) else []

    async def get_bank_details(self, args: dict) -> str:
        tx = self._resolve_transaction(text_arg(args, "transactionId"), text_arg(args, "phone") or self.session.phone)
        if not tx:
            return "Transaksi tidak ditemukan. Silakan buat transaksi terlebih dahulu."

        if tx.product_type in ("zakat", "qurban"):
            program = tx.product_type
        else:
            campaign = self.catalog.get_campaign(tx.product_id)
            program = program_for_pillar(campaign.pillar if campaign else None)

        accounts = self._json_setting(SETTING_BANK_ACCOUNTS)
        if accounts is None:
            return "Belum ada rekening bank yang dikonfigurasi."
        if not accounts:
            return "Belum ada rekening bank yang tersedia."

        lines = [
            "*Pembayaran Transfer Bank*",
            f"No. Transaksi: {tx.transaction_number}",
            f"Total Transfer: *Rp {fmt(tx.transfer_amount)}*",
            "",
            "Silakan transfer ke rekening berikut:",
        ]
        for bank in filter_bank_accounts(accounts, program):
            lines.extend(
                [
                    "",
                    f"🏦 *{bank.get('bankName', '-')}*",
                    f"No. Rekening: {bank.get('accountNumber', '-')}",
                    f"Atas Nama: {bank.get('accountName', '-')}",
                ]
            )
        lines.extend(
            [
                "",
                f"⚠️ Pastikan transfer sesuai nominal *Rp {fmt(tx.transfer_amount)}* "
                "agar pembayaran mudah diverifikasi.",
            ]
        )
        return "\n".join(lines)

    async def send_qris(self, args: dict) -> str:
        phone = text_arg(args, "phone") or self.session.phone
        if not normalize_phone(phone):
            return "Parameter phone diperlukan."
        tx = self._resolve_transaction(text_arg(args, "transactionId"), phone)
        if not tx:
            return "Transaksi tidak ditemukan."

        accounts = self._json_setting(SETTING_QRIS_ACCOUNTS)
        if accounts is None:
            return "Belum ada QRIS yang dikonfigurasi."
        account = next((a for a in accounts if isinstance(a, dict) and a.get("imageUrl")), None)
        if not account:
            return "QRIS tidak tersedia untuk transaksi ini."

        caption = f"QRIS {account.get('name', '')} - Rp {fmt(tx.transfer_amount)}\n{tx.transaction_number}"
        sent = await self.gateway.send_image(phone, account["imageUrl"], caption)
        if not sent:
            return "Gagal mengirim QRIS. Silakan pilih Transfer Bank atau coba lagi nanti."
        return (
            f"QRIS telah dikirim. Total: Rp {fmt(tx.transfer_amount)}. "
            "Silakan scan QR code di atas untuk melakukan pembayaran."
        )

    async def register_donatur(self, args: dict) -> str:
        name, email = text_arg(args, "name"), text_arg(args, "email")
        phone = self._own_phone(text_arg(args, "phone"))
        if phone is None:
            return "Pendaftaran hanya dapat dilakukan untuk nomor WhatsApp yang sedang chat."
        if not name or not email or not phone:
            return "Parameter tidak lengkap. Dibutuhkan: name, email, phone."
        if "@" not in email:
            return "Format email tidak valid. Minta donatur mengirim ulang alamat email."

        result = self.catalog.register_donatur(name, email, phone)
        if not result.ok:
            return result.message
        donatur, created = result.value
        self.session.donatur_id = donatur.id
        self.session.donor_name = donatur.name
        self.session.donor_email = donatur.email

        if not created:
            return f"Donatur sudah terdaftar dengan nama *{donatur.name}* ({donatur.email})."
        return (
            "Pendaftaran berhasil! Data donatur:\n"
            f"- Nama: {donatur.name}\n"
            f"- Email: {donatur.email}\n"
            f"- WhatsApp: {donatur.phone}"
        )

    async def confirm_payment(self, args: dict) -> str:
        tx = self._resolve_transaction(text_arg(args, "transactionId"))
        if not tx:
            return "Transaksi tidak ditemukan."

        proof_reference = None
        if self.image is not None:
            proof_reference = f"whatsapp-image:{hashlib.sha256(self.image.data).hexdigest()[:16]}"

        result = self.transactions.confirm_payment(
            tx.id,
            amount_arg(args.get("amount")),
            payment_date=_payment_date(text_arg(args, "paymentDate")),
            proof_reference=proof_reference,
        )
        if not result.ok:
            logger.info("Payment confirmation refused", extra={"context": {"transaction_id": tx.id, "code": result.code}})
            return result.message

        payment = result.value
        logger.info(
            "Payment confirmation recorded",
            extra={"context": {"transaction_number": payment.transaction_number, "amount": payment.amount}},
        )
        self.confirmed_payment = result.reply(payment_receipt)
        return self.confirmed_payment
