"""Free-text parsers for donor replies.

All functions are pure: they take the raw message text and return a structured
value, or ``None`` when the text cannot be interpreted. Nothing here touches the
session or the database.
"""

import math
import re
from enum import Enum
from typing import Optional

_RP_PREFIX_RE = re.compile(r"^rp\.?\s*")
_SUFFIX_RE = re.compile(r"^([\d.,]+)\s*(jt|juta|j|rb|ribu|r|m)\b")
_NUMBER_RE = re.compile(r"^\d+(\.\d+)?$")
_THOUSANDS_TAIL_RE = re.compile(r"\.\d{3}$")

MULTIPLIERS = {
    "jt": 1_000_000,
    "juta": 1_000_000,
    "j": 1_000_000,
    "m": 1_000_000,
    "rb": 1_000,
    "ribu": 1_000,
    "r": 1_000,
}

YES_WORDS = (
    "ya", "iya", "y", "ok", "oke", "okey", "okay", "lanjut", "setuju", "boleh",
    "mau", "bener", "benar", "betul", "yoi", "gas", "siap", "yap", "yup", "yes",
    "yess", "ayo", "lanjutkan", "proses",
)
NO_WORDS = (
    "tidak", "tdk", "ga", "gak", "nggak", "no", "nope", "jangan", "engga",
    "enggak", "kagak", "ogah", "gamau", "gajadi", "ga jadi",
)
CANCEL_WORDS = ("batal", "cancel", "batalkan", "stop", "keluar", "exit")
NONE_ANSWERS = {"0", "tidak", "tidak ada", "tdk", "ga ada", "gak ada", "nggak ada"}

COUNT_WORDS = {
    "satu": 1,
    "seorang": 1,
    "se orang": 1,
    "dua": 2,
    "tiga": 3,
    "empat": 4,
    "lima": 5,
    "enam": 6,
    "tujuh": 7,
    "delapan": 8,
    "sembilan": 9,
    "sepuluh": 10,
}

WEEKDAYS = {
    "senin": 1,
    "selasa": 2,
    "rabu": 3,
    "kamis": 4,
    "jumat": 5,
    "jum'at": 5,
    "sabtu": 6,
    "minggu": 7,
    "ahad": 7,
}

ZAKAT_TYPE_KEYWORDS = {
    "fitrah": "fitrah",
    "fitra": "fitrah",
    "maal": "maal",
    "mal": "maal",
    "mall": "maal",
    "penghasilan": "penghasilan",
    "gaji": "penghasilan",
    "profesi": "profesi",
    "pertanian": "pertanian",
    "tani": "pertanian",
    "peternakan": "peternakan",
    "ternak": "peternakan",
    "bisnis": "bisnis",
    "usaha": "bisnis",
    "dagang": "bisnis",
    "perdagangan": "bisnis",
}


class Confirmation(str, Enum):
    YES = "yes"
    NO = "no"
    UNRECOGNIZED = "unrecognized"


def normalize(text: Optional[str]) -> str:
    return " ".join((text or "").strip().lower().split())


def _matches_any(text: str, words) -> bool:
    return any(text == word or text.startswith(word + " ") for word in words)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_amount(text: Optional[str]) -> Optional[int]:
    """Parse an Indonesian money amount into whole Rupiah.

    Accepts "Rp" prefixes, thousands dots ("1.500.000"), a decimal comma and the
    shorthand suffixes jt/juta/j/m (million) and rb/ribu/r (thousand).
    Returns None for non-numeric, zero, negative or non-finite input.
    """
    value = normalize(text)
    value = _RP_PREFIX_RE.sub("", value)
    value = value.replace(" ", "")
    if not value:
        return None

    suffix = _SUFFIX_RE.match(value)
    if suffix:
        number = suffix.group(1).replace(",", ".")
        if not _NUMBER_RE.match(number):
            return None
        amount = float(number) * MULTIPLIERS[suffix.group(2)]
    else:
        if "," in value:
            value = value.replace(".", "").replace(",", ".")
        elif value.count(".") > 1 or _THOUSANDS_TAIL_RE.search(value):
            value = value.replace(".", "")
        if not _NUMBER_RE.match(value):
            return None
        amount = float(value)

    if not math.isfinite(amount) or amount <= 0:
        return None
    rounded = round_half_up(amount)
    return rounded if rounded > 0 else None


def match_confirmation(text: Optional[str]) -> Confirmation:
    value = normalize(text).rstrip(".!?")
    if _matches_any(value, YES_WORDS):
        return Confirmation.YES
    if _matches_any(value, NO_WORDS):
        return Confirmation.NO
    return Confirmation.UNRECOGNIZED


def match_cancel(text: Optional[str]) -> bool:
    return _matches_any(normalize(text).rstrip(".!?"), CANCEL_WORDS)


def is_reserved_word(text: Optional[str]) -> bool:
    """True for cancel and yes/no words, which never count as literal data."""
    return match_cancel(text) or match_confirmation(text) != Confirmation.UNRECOGNIZED


def is_none_answer(text: Optional[str]) -> bool:
    return normalize(text) in NONE_ANSWERS


def match_list_selection(text: Optional[str], length: int) -> Optional[int]:
    """Map a 1-based menu number to a 0-based index into a list of `length` items."""
    value = normalize(text).rstrip(".")
    if not value.isdigit():
        return None
    index = int(value) - 1
    if 0 <= index < length:
        return index
    return None


def parse_count(text: Optional[str], minimum: int = 1, maximum: int = 999) -> Optional[int]:
    value = normalize(text)
    if value.isdigit():
        count = int(value)
    else:
        count = COUNT_WORDS.get(value)
        if count is None:
            return None
    if minimum <= count <= maximum:
        return count
    return None


def parse_weekday(text: Optional[str]) -> Optional[int]:
    """1 = Senin ... 7 = Minggu; accepts the number or the day name."""
    value = normalize(text)
    if value.isdigit():
        day = int(value)
        return day if 1 <= day <= 7 else None
    return WEEKDAYS.get(value.replace("hari ", ""))


def match_zakat_type_keyword(text: Optional[str]) -> Optional[str]:
    value = normalize(text).replace("zakat", "").strip()
    if not value:
        return None
    if value in ZAKAT_TYPE_KEYWORDS:
        return ZAKAT_TYPE_KEYWORDS[value]
    for keyword, calculator_type in ZAKAT_TYPE_KEYWORDS.items():
        if keyword in value:
            return calculator_type
    return None
