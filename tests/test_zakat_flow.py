import pytest

from bantuanku_bot.services.catalog_service import ZakatProgram
from bantuanku_bot.services.flows.common import MSG_CONFIRM_REPROMPT, MSG_CREATE_FAILED
from bantuanku_bot.services.flows.engine import handle_flow_step, start_flow
from bantuanku_bot.services.flows.state import ZakatFlow, ZakatStep
from bantuanku_bot.services.flows.zakat import MSG_CANCELLED, calculator_kind


async def run_steps(ctx, calculator_type, *answers):
    reply = await start_flow(ctx, ZakatFlow(calculator_type=calculator_type))
    for answer in answers:
        reply = await handle_flow_step(ctx, answer)
    return reply


class TestCalculatorKind:
    def test_aliases(self):
        assert calculator_kind("zakat-fitrah") == "fitrah"
        assert calculator_kind("mal") == "maal"
        assert calculator_kind("profesi") == "penghasilan"
        assert calculator_kind("perdagangan") == "bisnis"
        assert calculator_kind("emas") == "generic"


class TestZakatFitrah:
    @pytest.mark.asyncio
    async def test_full_fitrah_flow(self, ctx, facade):
        reply = await start_flow(ctx, ZakatFlow(calculator_type="fitrah"))
        assert "berapa jiwa" in reply
        assert ctx.session.flow.step == ZakatStep.ASK_DATA

        reply = await handle_flow_step(ctx, "3")
        assert "3 jiwa" in reply
        assert ctx.session.flow.step == ZakatStep.ASK_ON_BEHALF

        reply = await handle_flow_step(ctx, "Ahmad dan keluarga")
        assert ctx.session.flow.step == ZakatStep.CONFIRM
        assert "Jumlah Jiwa: 3 orang" in reply
        assert "Atas Nama: Ahmad dan keluarga" in reply
        assert "*Total Zakat: Rp 135.000*" in reply

        reply = await handle_flow_step(ctx, "ya")
        assert ctx.session.flow is None
        assert "*Transaksi zakat berhasil dibuat!*" in reply
        assert "No. Transaksi: TRX-20260301-00001" in reply
        assert "Kode Unik: 123" in reply
        assert "*Total Transfer: Rp 135.123*" in reply
        assert "Link Invoice: https://bantuanku.test/invoice/tx-1" in reply
        assert "Transfer Bank" in reply

        request = facade.created[0]
        assert request.product_type == "zakat"
        assert request.product_id == "period-zt-fitrah"
        assert request.quantity == 3
        assert request.unit_price == 45_000
        assert request.include_unique_code is True
        assert request.donatur_id == "don-1"
        assert request.type_specific_data["on_behalf_of"] == "Ahmad dan keluarga"

    @pytest.mark.asyncio
    async def test_fitrah_amount_from_settings(self, ctx, catalog, facade):
        catalog.settings["zakat_fitrah_amount"] = "50000"
        reply = await run_steps(ctx, "fitrah", "dua", "Siti")
        assert "*Total Zakat: Rp 100.000*" in reply

    @pytest.mark.asyncio
    async def test_invalid_jiwa_reprompts(self, ctx):
        reply = await run_steps(ctx, "fitrah", "banyak")
        assert "jumlah jiwa" in reply
        assert ctx.session.flow.step == ZakatStep.ASK_DATA

    @pytest.mark.asyncio
    async def test_on_behalf_rejects_reserved_word(self, ctx):
        reply = await run_steps(ctx, "fitrah", "2", "ya")
        assert "Mohon masukkan nama" in reply
        assert ctx.session.flow.step == ZakatStep.ASK_ON_BEHALF


class TestZakatMaal:
    @pytest.mark.asyncio
    async def test_above_nisab(self, ctx, facade, gold_prices):
        reply = await run_steps(ctx, "maal", "500jt", "0")
        assert "2.5% × Rp 500.000.000 = Rp 12.500.000" in reply
        assert "*Total Zakat: Rp 12.500.000*" in reply
        gold_prices.get_price_per_gram.assert_awaited_once_with(1_000_000)

        await handle_flow_step(ctx, "ya")
        assert facade.created[0].unit_price == 12_500_000
        assert facade.created[0].quantity == 1

    @pytest.mark.asyncio
    async def test_hutang_is_deducted(self, ctx):
        reply = await run_steps(ctx, "maal", "500jt", "100jt")
        assert "*Total Zakat: Rp 10.000.000*" in reply

    @pytest.mark.asyncio
    async def test_below_nisab_ends_flow(self, ctx, facade):
        reply = await run_steps(ctx, "maal", "50jt", "tidak ada")
        assert "belum mencapai nisab" in reply
        assert ctx.session.flow is None
        assert facade.created == []

    @pytest.mark.asyncio
    async def test_gold_price_fallback_from_settings(self, ctx, catalog, gold_prices):
        catalog.settings["zakat_gold_price"] = "1200000"
        await run_steps(ctx, "maal", "500jt", "0")
        gold_prices.get_price_per_gram.assert_awaited_once_with(1_200_000)

    @pytest.mark.asyncio
    async def test_debt_exceeding_wealth(self, ctx):
        reply = await run_steps(ctx, "maal", "10jt", "20jt")
        assert "tidak mencukupi" in reply
        assert ctx.session.flow is None


class TestOtherCalculators:
    @pytest.mark.asyncio
    async def test_penghasilan(self, ctx):
        reply = await run_steps(ctx, "penghasilan", "10jt")
        assert "*Total Zakat: Rp 250.000*" in reply

    @pytest.mark.asyncio
    async def test_penghasilan_below_monthly_nisab(self, ctx):
        reply = await run_steps(ctx, "penghasilan", "5jt")
        assert "nisab bulanan Rp 7.083.333" in reply
        assert ctx.session.flow is None

    @pytest.mark.asyncio
    async def test_pertanian_irrigated(self, ctx):
        reply = await run_steps(ctx, "pertanian", "50jt", "1")
        assert "*Total Zakat: Rp 2.500.000*" in reply

    @pytest.mark.asyncio
    async def test_pertanian_rainfed(self, ctx):
        reply = await run_steps(ctx, "pertanian", "50jt", "2")
        assert "*Total Zakat: Rp 5.000.000*" in reply

    @pytest.mark.asyncio
    async def test_bisnis(self, ctx):
        reply = await run_steps(ctx, "bisnis", "200jt", "50jt", "10jt", "5jt")
        assert "2.5% × Rp 255.000.000 = Rp 6.375.000" in reply
        assert ctx.session.flow.step == ZakatStep.CONFIRM


class TestZakatSelection:
    @pytest.mark.asyncio
    async def test_type_menu_then_number(self, ctx):
        reply = await start_flow(ctx, ZakatFlow())
        assert "*Pilih Jenis Zakat*" in reply
        assert "1. Zakat Fitrah" in reply
        assert "2. Zakat Maal" in reply

        reply = await handle_flow_step(ctx, "2")
        assert "total harta" in reply
        assert ctx.session.flow.calculator_type == "maal"

    @pytest.mark.asyncio
    async def test_type_by_keyword(self, ctx):
        await start_flow(ctx, ZakatFlow())
        await handle_flow_step(ctx, "zakat gaji")
        assert ctx.session.flow.calculator_type == "penghasilan"
        assert ctx.session.flow.step == ZakatStep.ASK_DATA

    @pytest.mark.asyncio
    async def test_unavailable_type_shows_menu(self, ctx):
        reply = await start_flow(ctx, ZakatFlow(calculator_type="peternakan"))
        assert "*Pilih Jenis Zakat*" in reply
        assert ctx.session.flow.step == ZakatStep.SELECT_TYPE

    @pytest.mark.asyncio
    async def test_invalid_type_choice(self, ctx):
        await start_flow(ctx, ZakatFlow())
        reply = await handle_flow_step(ctx, "9")
        assert "Pilihan tidak valid" in reply

    @pytest.mark.asyncio
    async def test_no_at_type_menu_cancels(self, ctx):
        await start_flow(ctx, ZakatFlow())
        reply = await handle_flow_step(ctx, "tidak")
        assert reply == MSG_CANCELLED
        assert ctx.session.flow is None

    @pytest.mark.asyncio
    async def test_several_programs_ask_for_program(self, ctx, catalog):
        catalog.zakat_programs.append(ZakatProgram(id="zt-fitrah-2", name="Fitrah Pelosok", calculator_type="fitrah"))
        reply = await start_flow(ctx, ZakatFlow(calculator_type="fitrah"))
        assert "program mana" in reply
        assert ctx.session.flow.step == ZakatStep.SELECT_PROGRAM

        await handle_flow_step(ctx, "2")
        assert ctx.session.flow.program.id == "zt-fitrah-2"
        assert ctx.session.flow.step == ZakatStep.ASK_DATA

    @pytest.mark.asyncio
    async def test_no_programs_at_all(self, ctx, catalog):
        catalog.zakat_programs = []
        reply = await start_flow(ctx, ZakatFlow())
        assert "belum ada jenis zakat" in reply
        assert ctx.session.flow is None


class TestZakatConfirm:
    @pytest.mark.asyncio
    async def test_unclear_answer_reprompts(self, ctx):
        await run_steps(ctx, "penghasilan", "10jt")
        reply = await handle_flow_step(ctx, "hmm")
        assert reply == MSG_CONFIRM_REPROMPT
        assert ctx.session.flow.step == ZakatStep.CONFIRM

    @pytest.mark.asyncio
    async def test_no_cancels(self, ctx, facade):
        await run_steps(ctx, "penghasilan", "10jt")
        reply = await handle_flow_step(ctx, "tidak")
        assert reply == MSG_CANCELLED
        assert ctx.session.flow is None
        assert facade.created == []

    @pytest.mark.asyncio
    async def test_no_active_period(self, ctx, catalog, facade):
        catalog.zakat_periods = {}
        await run_steps(ctx, "penghasilan", "10jt")
        reply = await handle_flow_step(ctx, "ya")
        assert "tidak ada periode zakat aktif" in reply
        assert ctx.session.flow is None
        assert facade.created == []

    @pytest.mark.asyncio
    async def test_create_failure(self, ctx, facade):
        facade.fail = True
        await run_steps(ctx, "penghasilan", "10jt")
        reply = await handle_flow_step(ctx, "ya")
        assert reply == MSG_CREATE_FAILED
        assert ctx.session.flow is None
