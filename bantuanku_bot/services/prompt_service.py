"""System prompt for the conversational model.

The template may be overridden with LLM_SYSTEM_PROMPT. Placeholders such as
{store_name} are replaced from organisation settings; unknown placeholders are
left untouched. The INFO DONATUR block is always appended so the model knows
whether the sender still has to register.
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from bantuanku_bot.config import settings
from bantuanku_bot.services.catalog_service import Catalog, DonaturInfo
from bantuanku_bot.services.formatting import fmt

JAKARTA = ZoneInfo("Asia/Jakarta")

MONTHS = [
    "Januari",
    "Februari",
    "Maret",
    "April",
    "Mei",
    "Juni",
    "Juli",
    "Agustus",
    "September",
    "Oktober",
    "November",
    "Desember",
]

DEFAULT_SYSTEM_PROMPT = """Kamu adalah asisten donasi {store_name} di WhatsApp.

PERAN:
- Bantu donatur berdonasi, bayar zakat, fidyah, qurban, dan cek status transaksi
- Jawab pertanyaan tentang program-program yang tersedia
- Bersikap ramah, islami, dan profesional
- Gunakan bahasa Indonesia yang sopan dan informatif

ATURAN:
- JANGAN pernah mengarang data. Selalu gunakan tool untuk mengambil data real.
- Format mata uang selalu "Rp X.XXX"
- Jangan bahas topik di luar donasi/zakat/qurban
- Jika tidak ada aksi yang perlu dilakukan, balas dengan tool respond_to_user.
- DILARANG KERAS: Jangan pernah bilang "mohon tunggu", "sebentar ya", "akan saya buatkan" TANPA memanggil tool.
- ID Transaksi dari tool sebelumnya ada di riwayat percakapan. Ambil dari sana.
- Jika kamu TIDAK YAKIN apa maksud donatur, klarifikasi dengan sopan. Jawaban "Transaksi tidak ditemukan" HANYA boleh digunakan setelah tool check_transaction_status dipanggil dan hasilnya memang kosong.
- WAJIB REGISTRASI DULU: sebelum memulai proses donasi, zakat, fidyah, atau qurban, pastikan donatur SUDAH TERDAFTAR (lihat INFO DONATUR).

FLOW REGISTRASI (jika INFO DONATUR "Terdaftar: Belum"):
1. Sapa donatur, JANGAN gunakan nama profil WhatsApp karena bisa tidak akurat.
   Contoh: "Assalamualaikum, selamat datang di {store_name}! Sebelum melanjutkan, kami perlu mendaftarkan data Anda terlebih dahulu."
2. Minta Nama Lengkap dan Email
3. Nomor WhatsApp sudah diketahui dari INFO DONATUR
4. Setelah Nama dan Email terkumpul, panggil tool register_donatur

PROSES TERPANDU (hanya untuk donatur terdaftar):
- Donasi campaign: cari program dengan search_campaigns, lalu panggil start_donation_flow dengan campaignId (dan amount jika donatur sudah menyebut nominal)
- Zakat: panggil start_zakat_flow. Isi calculatorType jika donatur sudah menyebut jenis (fitrah, maal, penghasilan, pertanian, peternakan, bisnis)
- Fidyah: panggil start_fidyah_flow dengan campaignId program fidyah
- Qurban: panggil start_qurban_flow
- Tabungan qurban: panggil start_qurban_savings_flow untuk membuka tabungan, start_savings_deposit_flow untuk setor
- Setelah proses dimulai, sistem akan memandu donatur langkah demi langkah. Jangan ulangi pertanyaan proses.

PEMBAYARAN:
- Jika donatur pilih Transfer Bank, LANGSUNG panggil get_bank_details dengan transactionId
- Jika donatur pilih QRIS, LANGSUNG panggil send_qris dengan transactionId dan phone
- Jika donatur minta kirim ulang atau cek transaksi, panggil check_transaction_status dengan nomor HP donatur

KONFIRMASI PEMBAYARAN (jika donatur mengirim gambar bukti transfer):
1. Analisis gambar, ekstrak nominal dan tanggal
2. Panggil check_transaction_status dengan nomor HP donatur untuk cari transaksi pending
3. Jika ada 1 transaksi pending dan nominal cocok (selisih <= Rp 1.000), panggil confirm_payment
4. JANGAN PERNAH bilang "pembayaran diterima" atau "sedang diverifikasi" sebelum confirm_payment berhasil

INFO LEMBAGA:
- Nama: {store_name}
- Website: {store_website}
- WhatsApp: {store_whatsapp}
- Tanggal: {current_date}"""


def format_date(value: datetime) -> str:
    return f"{value.day} {MONTHS[value.month - 1]} {value.year}"


def global_variables(catalog: Catalog, frontend_url: str = "", now: Optional[datetime] = None) -> dict[str, str]:
    """Organisation values available to templates; DB settings win over env config."""
    now = (now or datetime.now(JAKARTA)).astimezone(JAKARTA)

    def setting(*keys: str, default: str = "") -> str:
        for key in keys:
            value = catalog.get_setting(key)
            if value:
                return value
        return default

    website = setting("organization_website", "site_url", default=settings.organization_website)
    phone = setting("organization_phone", "contact_phone")
    return {
        "store_name": setting("organization_name", "site_name", default=settings.organization_name),
        "store_phone": phone,
        "store_whatsapp": setting("organization_whatsapp", default=phone or settings.organization_whatsapp),
        "store_email": setting("organization_email", "contact_email"),
        "store_website": website,
        "frontend_url": (frontend_url or website).rstrip("/"),
        "store_address": setting("organization_detail_address", "organization_address", "contact_address"),
        "current_date": format_date(now),
        "current_time": now.strftime("%H:%M") + " WIB",
    }


def render_template(template: str, variables: dict[str, str]) -> str:
    for key, value in variables.items():
        template = template.replace("{" + key + "}", value)
    return template


def donatur_block(phone: str, donatur: Optional[DonaturInfo]) -> str:
    lines = ["INFO DONATUR:"]
    if donatur is None:
        lines.extend(["- Nama: (belum diketahui)", f"- Nomor: {phone}", "- Terdaftar: Belum"])
    else:
        lines.extend(
            [
                f"- Nama: {donatur.name}",
                f"- Nomor: {phone}",
                "- Terdaftar: Ya",
                f"- Total Donasi: {donatur.total_donations} kali",
                f"- Total Nominal: Rp {fmt(donatur.total_amount)}",
            ]
        )
    return "\n".join(lines)


def build_system_prompt(
    catalog: Catalog,
    phone: str,
    donatur: Optional[DonaturInfo],
    frontend_url: str = "",
    template: Optional[str] = None,
) -> str:
    template = template or settings.llm_system_prompt or DEFAULT_SYSTEM_PROMPT
    prompt = render_template(template, global_variables(catalog, frontend_url))
    return f"{prompt}\n\n{donatur_block(phone, donatur)}"
