import re
from typing import Optional

CALCULATOR_LABELS = {
    "fitrah": "Zakat Fitrah",
    "maal": "Zakat Maal",
    "penghasilan": "Zakat Penghasilan",
    "profesi": "Zakat Profesi",
    "pertanian": "Zakat Pertanian",
    "peternakan": "Zakat Peternakan",
    "bisnis": "Zakat Bisnis",
    "perdagangan": "Zakat Perdagangan",
}

PAYMENT_STATUS_LABELS = {
    "pending": "Menunggu Pembayaran",
    "processing": "Sedang Diverifikasi",
    "partial": "Pembayaran Sebagian",
    "paid": "Lunas",
    "failed": "Gagal",
    "expired": "Kedaluwarsa",
}

_TAG_RE = re.compile(r"<[^>]*>")


def fmt(amount: Optional[int]) -> str:
    """Thousands-dot grouping used in Indonesian Rupiah amounts (1500000 -> 1.500.000)."""
    return f"{int(amount or 0):,}".replace(",", ".")


def rupiah(amount: Optional[int]) -> str:
    return f"Rp {fmt(amount)}"


def normalize_calculator_type(raw: Optional[str]) -> str:
    value = (raw or "").strip().lower()
    if value.startswith("zakat-"):
        value = value[len("zakat-"):]
    return value


def calculator_label(calculator_type: str) -> str:
    calculator_type = normalize_calculator_type(calculator_type)
    return CALCULATOR_LABELS.get(calculator_type) or f"Zakat {calculator_type.capitalize()}"


def strip_html(html: Optional[str]) -> str:
    return " ".join(_TAG_RE.sub("", html or "").split())


def truncate_text(text: str, limit: int = 80) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def animal_label(animal_type: str) -> str:
    return "Sapi" if animal_type == "cow" else "Kambing"


def normalize_phone(phone: Optional[str]) -> str:
    """Digits only, with the WhatsApp JID suffix removed."""
    value = (phone or "").split("@", 1)[0]
    return re.sub(r"[^0-9]", "", value)
