"""Closed catalog of tools the model may call.

The JSON schemas are what providers see; everything else dispatches on
ToolName, so an unknown name coming back from a model is rejected before any
code runs.
"""

from enum import Enum
from typing import Optional

from bantuanku_bot.services.llm.base import ToolDefinition


class ToolName(str, Enum):
    SEARCH_CAMPAIGNS = "search_campaigns"
    GET_CAMPAIGN_DETAIL = "get_campaign_detail"
    GET_ZAKAT_MENU = "get_zakat_menu"
    GET_ZAKAT_PROGRAMS = "get_zakat_programs"
    CHECK_TRANSACTION_STATUS = "check_transaction_status"
    CHECK_SAVINGS_STATUS = "check_savings_status"
    GET_BANK_DETAILS = "get_bank_details"
    SEND_QRIS = "send_qris"
    REGISTER_DONATUR = "register_donatur"
    CONFIRM_PAYMENT = "confirm_payment"
    START_ZAKAT_FLOW = "start_zakat_flow"
    START_DONATION_FLOW = "start_donation_flow"
    START_FIDYAH_FLOW = "start_fidyah_flow"
    START_QURBAN_FLOW = "start_qurban_flow"
    START_QURBAN_SAVINGS_FLOW = "start_qurban_savings_flow"
    START_SAVINGS_DEPOSIT_FLOW = "start_savings_deposit_flow"
    RESPOND_TO_USER = "respond_to_user"

    @classmethod
    def parse(cls, name: Optional[str]) -> Optional["ToolName"]:
        try:
            return cls(name)
        except ValueError:
            return None


FLOW_START_TOOLS = {
    ToolName.START_ZAKAT_FLOW,
    ToolName.START_DONATION_FLOW,
    ToolName.START_FIDYAH_FLOW,
    ToolName.START_QURBAN_FLOW,
    ToolName.START_QURBAN_SAVINGS_FLOW,
    ToolName.START_SAVINGS_DEPOSIT_FLOW,
}

_NO_PARAMS = {"type": "object", "properties": {}}

TOOL_DEFINITIONS = [
    ToolDefinition(
        name=ToolName.SEARCH_CAMPAIGNS.value,
        description="Cari program/campaign donasi yang tersedia",
        parameters={
            "type": "object",
            "properties": {"query": {"type": "string", "description": "Kata kunci pencarian"}},
        },
    ),
    ToolDefinition(
        name=ToolName.GET_CAMPAIGN_DETAIL.value,
        description="Lihat detail campaign termasuk progress donasi",
        parameters={
            "type": "object",
            "properties": {"campaignId": {"type": "string", "description": "ID campaign"}},
            "required": ["campaignId"],
        },
    ),
    ToolDefinition(
        name=ToolName.GET_ZAKAT_MENU.value,
        description=(
            "Tampilkan menu jenis zakat (fitrah, maal, penghasilan, dll). HANYA panggil tool ini jika donatur "
            "bilang 'zakat' TANPA menyebut jenis spesifik."
        ),
        parameters=_NO_PARAMS,
    ),
    ToolDefinition(
        name=ToolName.GET_ZAKAT_PROGRAMS.value,
        description=(
            "Tampilkan daftar program zakat untuk jenis tertentu beserta ID-nya. Panggil jika donatur sudah "
            "menyebut jenis zakat: 'zakat fitrah' -> 'fitrah', 'zakat maal' -> 'maal'."
        ),
        parameters={
            "type": "object",
            "properties": {
                "calculatorType": {
                    "type": "string",
                    "description": "Jenis zakat: fitrah, maal, penghasilan, profesi, pertanian, peternakan, bisnis.",
                }
            },
            "required": ["calculatorType"],
        },
    ),
    ToolDefinition(
        name=ToolName.CHECK_TRANSACTION_STATUS.value,
        description="Cek status transaksi. Bisa cari berdasarkan nomor HP donatur ATAU nomor transaksi (TRX-...).",
        parameters={
            "type": "object",
            "properties": {
                "phone": {"type": "string", "description": "Nomor HP donatur"},
                "transactionNumber": {"type": "string", "description": "Nomor transaksi (misal TRX-20260219-58636)"},
            },
        },
    ),
    ToolDefinition(
        name=ToolName.CHECK_SAVINGS_STATUS.value,
        description="Cek saldo dan progress tabungan qurban aktif milik donatur.",
        parameters={
            "type": "object",
            "properties": {"phone": {"type": "string", "description": "Nomor HP donatur"}},
        },
    ),
    ToolDefinition(
        name=ToolName.GET_BANK_DETAILS.value,
        description=(
            "Tampilkan detail rekening bank untuk transfer pembayaran. Jika transactionId tidak diketahui, "
            "kirim phone untuk mencari transaksi pending terakhir."
        ),
        parameters={
            "type": "object",
            "properties": {
                "transactionId": {"type": "string", "description": "ID atau nomor transaksi (dari riwayat percakapan)"},
                "phone": {"type": "string", "description": "Nomor HP donatur (jika transactionId tidak tersedia)"},
            },
        },
    ),
    ToolDefinition(
        name=ToolName.SEND_QRIS.value,
        description="Kirim gambar QRIS ke WhatsApp donatur untuk pembayaran",
        parameters={
            "type": "object",
            "properties": {
                "transactionId": {"type": "string", "description": "ID atau nomor transaksi"},
                "phone": {"type": "string", "description": "Nomor WhatsApp donatur tujuan"},
            },
            "required": ["phone"],
        },
    ),
    ToolDefinition(
        name=ToolName.REGISTER_DONATUR.value,
        description="Daftarkan donatur baru ke sistem",
        parameters={
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Nama lengkap donatur"},
                "email": {"type": "string", "description": "Alamat email donatur"},
                "phone": {"type": "string", "description": "Nomor WhatsApp donatur"},
            },
            "required": ["name", "email", "phone"],
        },
    ),
    ToolDefinition(
        name=ToolName.CONFIRM_PAYMENT.value,
        description=(
            "Konfirmasi pembayaran donatur berdasarkan bukti transfer yang dikirim. Gunakan setelah membaca "
            "gambar bukti transfer dan mengekstrak informasi pembayaran."
        ),
        parameters={
            "type": "object",
            "properties": {
                "transactionId": {"type": "string", "description": "ID atau nomor transaksi yang dibayar"},
                "amount": {"type": "number", "description": "Jumlah nominal yang ditransfer (dari bukti transfer)"},
                "paymentDate": {"type": "string", "description": "Tanggal pembayaran format YYYY-MM-DD"},
            },
            "required": ["transactionId", "amount"],
        },
    ),
    ToolDefinition(
        name=ToolName.START_ZAKAT_FLOW.value,
        description="Mulai proses pembayaran zakat terpandu. Isi calculatorType jika donatur sudah menyebut jenis.",
        parameters={
            "type": "object",
            "properties": {
                "calculatorType": {
                    "type": "string",
                    "description": "Jenis zakat (opsional): fitrah, maal, penghasilan, pertanian, peternakan, bisnis.",
                }
            },
        },
    ),
    ToolDefinition(
        name=ToolName.START_DONATION_FLOW.value,
        description="Mulai proses donasi terpandu untuk sebuah campaign.",
        parameters={
            "type": "object",
            "properties": {
                "campaignId": {"type": "string", "description": "ID campaign (dari search_campaigns)"},
                "amount": {"type": "number", "description": "Nominal donasi jika donatur sudah menyebutkan"},
            },
            "required": ["campaignId"],
        },
    ),
    ToolDefinition(
        name=ToolName.START_FIDYAH_FLOW.value,
        description="Mulai proses pembayaran fidyah terpandu.",
        parameters={
            "type": "object",
            "properties": {"campaignId": {"type": "string", "description": "ID campaign fidyah"}},
            "required": ["campaignId"],
        },
    ),
    ToolDefinition(
        name=ToolName.START_QURBAN_FLOW.value,
        description="Mulai proses pemesanan hewan qurban terpandu.",
        parameters=_NO_PARAMS,
    ),
    ToolDefinition(
        name=ToolName.START_QURBAN_SAVINGS_FLOW.value,
        description="Mulai proses pembukaan tabungan qurban (cicilan).",
        parameters=_NO_PARAMS,
    ),
    ToolDefinition(
        name=ToolName.START_SAVINGS_DEPOSIT_FLOW.value,
        description="Mulai proses setor tabungan qurban.",
        parameters=_NO_PARAMS,
    ),
    ToolDefinition(
        name=ToolName.RESPOND_TO_USER.value,
        description=(
            "Kirim pesan teks biasa ke donatur. Gunakan jika tidak ada tool aksi lain yang perlu dipanggil, "
            "misalnya untuk menyapa atau menjawab pertanyaan."
        ),
        parameters={
            "type": "object",
            "properties": {"message": {"type": "string", "description": "Pesan yang akan dikirim ke donatur"}},
            "required": ["message"],
        },
    ),
]
