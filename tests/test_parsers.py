import pytest

from bantuanku_bot.services.parsers import (
    Confirmation,
    is_none_answer,
    is_reserved_word,
    match_cancel,
    match_confirmation,
    match_list_selection,
    match_zakat_type_keyword,
    parse_amount,
    parse_count,
    parse_weekday,
    round_half_up,
)


class TestParseAmount:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("100000", 100_000),
            ("Rp 1.500.000", 1_500_000),
            ("rp50.000", 50_000),
            ("1.000", 1_000),
            ("50rb", 50_000),
            ("10 rb", 10_000),
            ("100 ribu", 100_000),
            ("1jt", 1_000_000),
            ("2,5jt", 2_500_000),
            ("1.5 juta", 1_500_000),
            ("1.500,50", 1_501),
        ],
    )
    def test_valid_amounts(self, text, expected):
        assert parse_amount(text) == expected

    @pytest.mark.parametrize("text", ["", None, "abc", "0", "-5000", "Rp", "seratus"])
    def test_invalid_amounts(self, text):
        assert parse_amount(text) is None


class TestConfirmation:
    @pytest.mark.parametrize("text", ["ya", "Ya", "iya dong", "ok!", "lanjut", "Setuju."])
    def test_yes(self, text):
        assert match_confirmation(text) == Confirmation.YES

    @pytest.mark.parametrize("text", ["tidak", "gak jadi", "nggak", "no"])
    def test_no(self, text):
        assert match_confirmation(text) == Confirmation.NO

    @pytest.mark.parametrize("text", ["mungkin", "", "Ahmad"])
    def test_unrecognized(self, text):
        assert match_confirmation(text) == Confirmation.UNRECOGNIZED


class TestCancel:
    @pytest.mark.parametrize("text", ["batal", "Batal", "batal aja", "batalkan", "cancel", "STOP", "keluar"])
    def test_cancel_words(self, text):
        assert match_cancel(text) is True

    @pytest.mark.parametrize("text", ["tidak", "lanjut", "pembatalan", ""])
    def test_not_cancel(self, text):
        assert match_cancel(text) is False

    def test_reserved_words(self):
        assert is_reserved_word("ya") is True
        assert is_reserved_word("batal") is True
        assert is_reserved_word("Ahmad dan keluarga") is False


class TestSelections:
    def test_list_selection_is_zero_based(self):
        assert match_list_selection("2", 3) == 1
        assert match_list_selection("1.", 3) == 0

    @pytest.mark.parametrize("text", ["0", "4", "dua", ""])
    def test_list_selection_out_of_range(self, text):
        assert match_list_selection(text, 3) is None

    def test_parse_count_digits_and_words(self):
        assert parse_count("5") == 5
        assert parse_count("tiga") == 3
        assert parse_count("seorang") == 1

    def test_parse_count_bounds(self):
        assert parse_count("0") is None
        assert parse_count("1000") is None
        assert parse_count("10", 1, 5) is None

    @pytest.mark.parametrize(
        "text,expected",
        [("senin", 1), ("7", 7), ("hari jumat", 5), ("Ahad", 7), ("8", None), ("besok", None)],
    )
    def test_parse_weekday(self, text, expected):
        assert parse_weekday(text) == expected

    def test_none_answer(self):
        assert is_none_answer("0") is True
        assert is_none_answer("Tidak ada") is True
        assert is_none_answer("500rb") is False


class TestZakatKeywords:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("zakat fitrah", "fitrah"),
            ("maal", "maal"),
            ("zakat mal", "maal"),
            ("gaji", "penghasilan"),
            ("dagang", "bisnis"),
            ("zakat pertanian saya", "pertanian"),
        ],
    )
    def test_keywords(self, text, expected):
        assert match_zakat_type_keyword(text) == expected

    @pytest.mark.parametrize("text", ["zakat", "", "wakaf"])
    def test_unknown(self, text):
        assert match_zakat_type_keyword(text) is None


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4) == 2
    assert round_half_up(1124.5) == 1125
