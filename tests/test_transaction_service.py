import random

import pytest

from bantuanku_bot.models import QurbanPackagePeriod, QurbanSharedGroup, Transaction, TransactionPayment
from bantuanku_bot.services.transaction_service import (
    PRODUCT_CAMPAIGN,
    PRODUCT_QURBAN,
    PRODUCT_ZAKAT,
    SavingsRequest,
    TransactionError,
    TransactionRequest,
    TransactionService,
)

DONOR_PHONE = "6281234567890"


class ScriptedRng:
    """Returns the given numbers in order from randint."""

    def __init__(self, *values):
        self.values = list(values)

    def randint(self, a, b):
        return self.values.pop(0)


def request(**overrides):
    values = dict(
        product_type=PRODUCT_CAMPAIGN,
        product_id="camp-1",
        quantity=1,
        unit_price=50_000,
        donor_name="Ahmad",
        donor_phone=DONOR_PHONE,
        donatur_id="don-1",
    )
    values.update(overrides)
    return TransactionRequest(**values)


@pytest.fixture
def service(seeded_db):
    return TransactionService(seeded_db, rng=random.Random(7))


class TestCreate:
    def test_campaign_transaction(self, service, seeded_db):
        record = service.create(request())

        assert record.transaction_number.startswith("TRX-")
        assert record.product_name == "Bantu Sekolah Pelosok"
        assert record.total_amount == 50_000
        assert 1 <= record.unique_code <= 999
        assert record.transfer_amount == 50_000 + record.unique_code
        assert record.payment_status == "pending"

        row = seeded_db.get(Transaction, record.id)
        assert row.subtotal == 50_000
        assert row.donatur_id == "don-1"

    def test_zakat_uses_type_name(self, service):
        record = service.create(
            request(
                product_type=PRODUCT_ZAKAT,
                product_id="zp-fitrah",
                quantity=3,
                unit_price=45_000,
                type_specific_data={"zakat_type": "fitrah", "jiwa": 3},
            )
        )
        assert record.product_name == "Zakat Fitrah"
        assert record.total_amount == 135_000

    def test_admin_fee_added(self, service):
        record = service.create(
            request(product_type=PRODUCT_QURBAN, product_id="pp-goat", unit_price=3_000_000, admin_fee=50_000)
        )
        assert record.product_name == "Kambing Standar - Idul Adha 1447 H"
        assert record.total_amount == 3_050_000

    def test_without_unique_code(self, service):
        record = service.create(request(include_unique_code=False))
        assert record.unique_code == 0
        assert record.transfer_amount == 50_000

    def test_type_specific_data_stored(self, service, seeded_db):
        record = service.create(request(type_specific_data={"source": "whatsapp"}))
        assert seeded_db.get(Transaction, record.id).type_specific_data == {"source": "whatsapp"}

    @pytest.mark.parametrize(
        "overrides",
        [
            {"product_type": "infaq"},
            {"quantity": 0},
            {"unit_price": 0},
            {"product_id": "missing"},
        ],
    )
    def test_invalid_requests(self, service, overrides):
        with pytest.raises(TransactionError):
            service.create(request(**overrides))

    def test_numbers_unique(self, service):
        numbers = {service.create(request()).transaction_number for _ in range(5)}
        assert len(numbers) == 5


class TestQurbanStock:
    def test_individual_stock_reserved(self, service, seeded_db):
        service.create(request(product_type=PRODUCT_QURBAN, product_id="pp-goat", quantity=2, unit_price=3_000_000))
        assert seeded_db.get(QurbanPackagePeriod, "pp-goat").stock_sold == 3

    def test_individual_out_of_stock(self, service, seeded_db):
        with pytest.raises(TransactionError):
            service.create(request(product_type=PRODUCT_QURBAN, product_id="pp-goat", quantity=5, unit_price=3_000_000))
        assert seeded_db.get(QurbanPackagePeriod, "pp-goat").stock_sold == 1

    def test_shared_slots_fill_groups(self, service, seeded_db):
        records = [
            service.create(request(product_type=PRODUCT_QURBAN, product_id="pp-cow", unit_price=3_500_000))
            for _ in range(7)
        ]

        groups = seeded_db.query(QurbanSharedGroup).all()
        assert len(groups) == 1
        assert groups[0].slots_filled == 7
        assert groups[0].status == "full"
        assert seeded_db.get(QurbanPackagePeriod, "pp-cow").slots_filled == 7
        assert {seeded_db.get(Transaction, r.id).shared_group_id for r in records} == {groups[0].id}

    def test_shared_full_when_all_animals_taken(self, service):
        for _ in range(7):
            service.create(request(product_type=PRODUCT_QURBAN, product_id="pp-cow", unit_price=3_500_000))
        with pytest.raises(TransactionError):
            service.create(request(product_type=PRODUCT_QURBAN, product_id="pp-cow", unit_price=3_500_000))

    def test_shared_one_slot_per_transaction(self, service):
        with pytest.raises(TransactionError):
            service.create(request(product_type=PRODUCT_QURBAN, product_id="pp-cow", quantity=2, unit_price=3_500_000))

    def test_savings_deposit_reserves_nothing(self, service, seeded_db):
        service.create(
            request(
                product_type=PRODUCT_QURBAN,
                product_id="pp-goat",
                unit_price=300_000,
                include_unique_code=False,
                type_specific_data={"payment_type": "savings", "savings_id": "sav-1"},
            )
        )
        assert seeded_db.get(QurbanPackagePeriod, "pp-goat").stock_sold == 1


class TestSavings:
    def _request(self, **overrides):
        values = dict(
            donatur_id="don-1",
            donor_name="Ahmad",
            donor_phone=DONOR_PHONE,
            target_period_id="qp-1447",
            target_package_period_id="pp-goat",
            target_amount=3_000_000,
            installment_frequency="monthly",
            installment_count=10,
            installment_amount=300_000,
            installment_day=1,
        )
        values.update(overrides)
        return SavingsRequest(**values)

    def test_open_savings(self, service):
        record = service.open_savings(self._request())
        assert record.savings_number.startswith("SAV-QBN-")
        assert record.installment_amount == 300_000
        assert record.installment_count == 10

    def test_open_savings_unknown_package(self, service):
        with pytest.raises(TransactionError):
            service.open_savings(self._request(target_package_period_id="missing"))

    def test_open_savings_invalid_plan(self, service):
        with pytest.raises(TransactionError):
            service.open_savings(self._request(installment_count=0))

    def test_savings_number_skips_taken(self, seeded_db):
        service = TransactionService(seeded_db, rng=ScriptedRng(42, 42, 43))
        first = service.open_savings(self._request())
        second = service.open_savings(self._request())

        assert first.savings_number.endswith("-00042")
        assert second.savings_number.endswith("-00043")


class TestConfirmPayment:
    def test_records_payment(self, service, seeded_db):
        tx = service.create(request())
        result = service.confirm_payment(tx.id, 50_000, proof_reference="whatsapp-image:abc")

        assert result.ok
        assert result.value.transaction_number == tx.transaction_number
        assert result.value.has_proof is True
        assert result.value.transfer_amount == tx.transfer_amount

        row = seeded_db.get(Transaction, tx.id)
        assert row.payment_status == "processing"
        assert row.paid_amount == 50_000
        payment = seeded_db.query(TransactionPayment).filter_by(transaction_id=tx.id).one()
        assert payment.status == "pending"
        assert payment.payment_proof == "whatsapp-image:abc"
        assert payment.payment_number.startswith("PAY-")

    def test_payment_number_skips_taken(self, service, seeded_db):
        first_tx = service.create(request())
        second_tx = service.create(request())
        service.rng = ScriptedRng(5, 5, 6)

        first = service.confirm_payment(first_tx.id, 50_000).unwrap()
        second = service.confirm_payment(second_tx.id, 50_000).unwrap()

        assert first.payment_number.endswith("-000005")
        assert second.payment_number.endswith("-000006")

    def test_missing_transaction_id(self, service):
        assert service.confirm_payment("", 50_000).code == "missing_transaction"

    def test_invalid_amount(self, service):
        tx = service.create(request())
        assert service.confirm_payment(tx.id, 0).code == "invalid_amount"

    def test_not_found(self, service):
        assert service.confirm_payment("missing", 50_000).code == "not_found"

    def test_already_processing(self, service):
        tx = service.create(request())
        service.confirm_payment(tx.id, 50_000)
        result = service.confirm_payment(tx.id, 50_000)
        assert not result.ok
        assert result.code == "already_processing"

    def test_already_paid(self, service, seeded_db):
        tx = service.create(request())
        seeded_db.get(Transaction, tx.id).payment_status = "paid"
        seeded_db.commit()
        assert service.confirm_payment(tx.id, 50_000).code == "already_paid"
