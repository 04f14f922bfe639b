import pytest

from bantuanku_bot.services.result import Result
from bantuanku_bot.services.transaction_service import PaymentRecord


def _payment(**overrides) -> PaymentRecord:
    data = dict(
        payment_number="PAY-20260301-000001",
        transaction_number="TRX-20260301-00001",
        amount=150_000,
        transfer_amount=150_123,
        has_proof=True,
    )
    data.update(overrides)
    return PaymentRecord(**data)


class TestRefusal:
    def test_refused_result_carries_code_and_donor_message(self):
        result = Result.refused("already_paid", "Transaksi ini sudah lunas.")

        assert result.ok is False
        assert result.code == "already_paid"
        assert result.message == "Transaksi ini sudah lunas."
        assert result.value is None

    def test_success_has_no_code(self):
        result = Result.success(_payment())

        assert result.ok is True
        assert result.code is None
        assert result.value.amount == 150_000

    def test_success_with_none_value_is_still_ok(self):
        assert Result.success(None).ok is True


class TestMapAndReply:
    def test_map_transforms_success_value(self):
        result = Result.success(_payment()).map(lambda p: p.transfer_amount - p.amount)
        assert result.unwrap() == 123

    def test_map_keeps_refusal(self):
        result = Result.refused("not_found", "Transaksi tidak ditemukan.").map(lambda p: p.amount)

        assert result.ok is False
        assert result.code == "not_found"
        assert result.message == "Transaksi tidak ditemukan."

    def test_reply_renders_value(self):
        result = Result.success(_payment(transaction_number="TRX-20260301-00042"))
        assert result.reply(lambda p: p.transaction_number) == "TRX-20260301-00042"

    def test_reply_returns_refusal_message(self):
        result = Result.refused("invalid_amount", "Nominal pembayaran harus lebih dari 0.")
        assert result.reply(lambda p: "unused") == "Nominal pembayaran harus lebih dari 0."


class TestUnwrap:
    def test_unwrap_raises_with_code(self):
        result = Result.refused("already_processing", "Mohon tunggu konfirmasi admin.")
        with pytest.raises(ValueError, match="already_processing"):
            result.unwrap()
