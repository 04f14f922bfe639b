from unittest.mock import AsyncMock, Mock

import pytest

from bantuanku_bot.services.flows.common import FlowContext
from bantuanku_bot.services.flows.state import DonationFlow, DonationStep, FlowType, QurbanFlow, QurbanStep, ZakatFlow
from bantuanku_bot.services.llm import ChatTurn, ImageAttachment, LLMProviderError, PlainReply, ToolInvocation, ToolResult
from bantuanku_bot.services.orchestrator import (
    HISTORY_TURNS,
    MSG_APOLOGY,
    MSG_PROOF_REQUIRED,
    RESULT_FLOW_ACTIVE,
    RESULT_MUST_REGISTER,
    RESULT_NO_IMAGE,
    RESULT_TOOL_ERROR,
    Orchestrator,
    build_flow,
    claims_payment_confirmation,
)
from bantuanku_bot.services.tools import TOOL_DEFINITIONS, ToolName

SYSTEM_PROMPT = "Kamu adalah asisten donasi."


def make_provider(*completions):
    provider = Mock()
    provider.name = "fake"
    provider.complete = AsyncMock(side_effect=list(completions))
    return provider


@pytest.fixture
def executor():
    executor = Mock()
    executor.image = None
    executor.confirmed_payment = None
    executor.execute = AsyncMock(return_value="hasil tool")
    return executor


def make_orchestrator(provider, executor, ctx):
    return Orchestrator(provider, executor, ctx, SYSTEM_PROMPT)


def transcript_of(provider, call_index=-1):
    return provider.complete.call_args_list[call_index].args[1]


class TestPhraseGuard:
    @pytest.mark.parametrize(
        "text",
        [
            "Alhamdulillah, pembayaran Anda telah kami terima.",
            "Pembayaran diterima, terima kasih!",
            "Bukti transfer Anda telah kami terima dan sedang dalam proses verifikasi.",
            "Pembayaran Anda sudah diterima, terima kasih!",
            "Transfer Anda sudah kami terima dan berhasil diverifikasi.",
            "Pembayaran berhasil! Terima kasih atas donasinya.",
            "Pembayaran Anda sudah terverifikasi.",
            "Donasi Anda sudah lunas.",
            "Bukti pembayaran sudah dikonfirmasi admin.",
            "Transfer sukses, jazakallah khair.",
            "Payment received",
            "Your payment has been confirmed.",
        ],
    )
    def test_claims(self, text):
        assert claims_payment_confirmation(text) is True

    @pytest.mark.parametrize(
        "text",
        [
            "Status: Sedang Diverifikasi",
            "Silakan kirim bukti transfer Anda.",
            "Donasi berhasil dibuat! Silakan transfer ke rekening berikut.",
            "Terima kasih atas donasi Anda, semoga berkah.",
            "Apakah pembayaran sudah Anda lakukan?",
            "Setelah transfer, mohon kirim foto bukti pembayaran.",
            "Please send your payment proof.",
            "",
        ],
    )
    def test_not_claims(self, text):
        assert claims_payment_confirmation(text) is False


class TestBuildFlow:
    def test_zakat_with_type(self):
        flow = build_flow(ToolName.START_ZAKAT_FLOW, {"calculatorType": "fitrah"})
        assert isinstance(flow, ZakatFlow)
        assert flow.calculator_type == "fitrah"

    def test_zakat_without_type(self):
        assert build_flow(ToolName.START_ZAKAT_FLOW, {}).calculator_type is None

    def test_donation_amount_text(self):
        flow = build_flow(ToolName.START_DONATION_FLOW, {"campaignId": "camp-1", "amount": "50rb"})
        assert flow.campaign_id == "camp-1"
        assert flow.amount == 50_000

    def test_donation_amount_number(self):
        flow = build_flow(ToolName.START_DONATION_FLOW, {"campaignId": "camp-1", "amount": 75000})
        assert flow.amount == 75_000

    def test_not_a_flow_tool(self):
        with pytest.raises(ValueError):
            build_flow(ToolName.SEARCH_CAMPAIGNS, {})


class TestReplies:
    @pytest.mark.asyncio
    async def test_plain_reply(self, ctx, executor):
        provider = make_provider(PlainReply(text="Waalaikumsalam, ada yang bisa kami bantu?"))
        reply = await make_orchestrator(provider, executor, ctx).run("Assalamualaikum")

        assert reply == "Waalaikumsalam, ada yang bisa kami bantu?"
        args = provider.complete.call_args.args
        assert args[0] == SYSTEM_PROMPT
        assert args[1] == [ChatTurn(role="user", content="Assalamualaikum")]
        assert args[2] is TOOL_DEFINITIONS
        assert args[3] is None

    @pytest.mark.asyncio
    async def test_respond_to_user_tool(self, ctx, executor):
        provider = make_provider(ToolInvocation(name="respond_to_user", arguments={"message": "Halo kak!"}))
        assert await make_orchestrator(provider, executor, ctx).run("halo") == "Halo kak!"
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_history_included(self, ctx, executor):
        for i in range(15):
            ctx.session.remember("user" if i % 2 == 0 else "assistant", f"pesan {i}")
        provider = make_provider(PlainReply(text="ok"))
        await make_orchestrator(provider, executor, ctx).run("lagi")

        transcript = transcript_of(provider)
        assert len(transcript) == HISTORY_TURNS + 1
        assert transcript[0].content == "pesan 5"
        assert transcript[-1] == ChatTurn(role="user", content="lagi")

    @pytest.mark.asyncio
    async def test_image_forwarded(self, ctx, executor):
        image = ImageAttachment(data=b"jpeg", mime_type="image/jpeg")
        provider = make_provider(PlainReply(text="Terima kasih"))
        await make_orchestrator(provider, executor, ctx).run("[gambar]", image)
        assert provider.complete.call_args.args[3] is image

    @pytest.mark.asyncio
    async def test_empty_reply_after_tool_returns_tool_result(self, ctx, executor):
        provider = make_provider(ToolInvocation(name="get_zakat_menu"), PlainReply(text="  "))
        assert await make_orchestrator(provider, executor, ctx).run("zakat apa saja?") == "hasil tool"

    @pytest.mark.asyncio
    async def test_empty_reply_without_tool_is_apology(self, ctx, executor):
        provider = make_provider(PlainReply(text=""))
        assert await make_orchestrator(provider, executor, ctx).run("halo") == MSG_APOLOGY


class TestToolRounds:
    @pytest.mark.asyncio
    async def test_tool_result_fed_back(self, ctx, executor):
        provider = make_provider(
            ToolInvocation(name="search_campaigns", arguments={"query": "sekolah"}),
            PlainReply(text="Ada 1 program sekolah."),
        )
        orchestrator = make_orchestrator(provider, executor, ctx)
        reply = await orchestrator.run("program sekolah")

        assert reply == "Ada 1 program sekolah."
        executor.execute.assert_awaited_once_with(ToolName.SEARCH_CAMPAIGNS, {"query": "sekolah"})
        transcript = transcript_of(provider)
        assert transcript[-2] == ToolInvocation(
            name="search_campaigns", arguments={"query": "sekolah"}, call_id="call_1_search_campaigns"
        )
        assert transcript[-1] == ToolResult(name="search_campaigns", content="hasil tool", call_id="call_1_search_campaigns")
        assert orchestrator.tool_calls == [
            {"name": "search_campaigns", "arguments": {"query": "sekolah"}, "result": "hasil tool"}
        ]

    @pytest.mark.asyncio
    async def test_provider_call_id_kept(self, ctx, executor):
        provider = make_provider(
            ToolInvocation(name="get_zakat_menu", arguments={}, call_id="toolu_01"),
            PlainReply(text="ok"),
        )
        await make_orchestrator(provider, executor, ctx).run("zakat")
        assert transcript_of(provider)[-1].call_id == "toolu_01"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, ctx, executor):
        provider = make_provider(ToolInvocation(name="hapus_data"), PlainReply(text="Maaf."))
        await make_orchestrator(provider, executor, ctx).run("hapus")
        executor.execute.assert_not_awaited()
        assert transcript_of(provider)[-1].content == 'Tool "hapus_data" tidak dikenal.'

    @pytest.mark.asyncio
    async def test_tool_exception_reported_to_model(self, ctx, executor):
        executor.execute = AsyncMock(side_effect=RuntimeError("db down"))
        provider = make_provider(ToolInvocation(name="search_campaigns"), PlainReply(text="Maaf, coba lagi."))
        reply = await make_orchestrator(provider, executor, ctx).run("program")

        assert reply == "Maaf, coba lagi."
        assert transcript_of(provider)[-1].content == RESULT_TOOL_ERROR.format(tool="search_campaigns")

    @pytest.mark.asyncio
    async def test_loop_exhaustion_returns_last_result(self, ctx, executor):
        provider = Mock()
        provider.complete = AsyncMock(side_effect=lambda *args: ToolInvocation(name="get_zakat_menu"))
        reply = await make_orchestrator(provider, executor, ctx).run("zakat")

        assert reply == "hasil tool"
        assert provider.complete.await_count == 5
        assert executor.execute.await_count == 5

    @pytest.mark.asyncio
    async def test_provider_error_first_round(self, ctx, executor):
        provider = make_provider(LLMProviderError("fake", "API error 500", 500))
        assert await make_orchestrator(provider, executor, ctx).run("halo") == MSG_APOLOGY

    @pytest.mark.asyncio
    async def test_provider_error_after_tool(self, ctx, executor):
        provider = make_provider(ToolInvocation(name="get_zakat_menu"), LLMProviderError("fake", "timeout"))
        assert await make_orchestrator(provider, executor, ctx).run("zakat") == "hasil tool"


class TestPaymentConfirmation:
    @pytest.mark.asyncio
    async def test_confirm_payment_requires_image(self, ctx, executor):
        provider = make_provider(
            ToolInvocation(name="confirm_payment", arguments={"transactionId": "tx-1", "amount": 100000}),
            PlainReply(text="Mohon kirim foto bukti transfer."),
        )
        reply = await make_orchestrator(provider, executor, ctx).run("sudah transfer ya")

        assert reply == "Mohon kirim foto bukti transfer."
        executor.execute.assert_not_awaited()
        assert transcript_of(provider)[-1].content == RESULT_NO_IMAGE

    @pytest.mark.asyncio
    async def test_confirm_payment_with_image_runs(self, ctx, executor):
        executor.image = ImageAttachment(data=b"jpeg")
        provider = make_provider(
            ToolInvocation(name="confirm_payment", arguments={"transactionId": "tx-1", "amount": 100000}),
            PlainReply(text="ok"),
        )
        await make_orchestrator(provider, executor, ctx).run("[gambar]", executor.image)
        executor.execute.assert_awaited_once_with(ToolName.CONFIRM_PAYMENT, {"transactionId": "tx-1", "amount": 100000})

    @pytest.mark.asyncio
    async def test_unbacked_claim_replaced(self, ctx, executor):
        provider = make_provider(PlainReply(text="Pembayaran Anda telah kami terima, terima kasih!"))
        assert await make_orchestrator(provider, executor, ctx).run("sudah bayar") == MSG_PROOF_REQUIRED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply",
        [
            "Pembayaran Anda sudah diterima, terima kasih!",
            "Transfer Anda sudah kami terima dan berhasil diverifikasi.",
        ],
    )
    async def test_reworded_claim_replaced(self, ctx, executor, reply):
        provider = make_provider(PlainReply(text=reply))
        assert await make_orchestrator(provider, executor, ctx).run("sudah transfer ya") == MSG_PROOF_REQUIRED

    @pytest.mark.asyncio
    async def test_backed_claim_uses_tool_result(self, ctx, executor):
        executor.confirmed_payment = "Bukti pembayaran berhasil diterima!\nNo. Transaksi: TRX-20260301-00001"
        provider = make_provider(ToolInvocation(name="respond_to_user", arguments={"message": "Pembayaran diterima!"}))
        reply = await make_orchestrator(provider, executor, ctx).run("[gambar]")
        assert reply == executor.confirmed_payment

    @pytest.mark.asyncio
    async def test_status_label_not_treated_as_claim(self, ctx, executor):
        text = "TRX-20260301-00001 - Donasi Campaign\nStatus: Sedang Diverifikasi"
        provider = make_provider(PlainReply(text=text))
        assert await make_orchestrator(provider, executor, ctx).run("cek transaksi") == text


class TestFlowStart:
    @pytest.mark.asyncio
    async def test_flow_start_ends_loop_with_first_prompt(self, ctx, executor):
        provider = make_provider(
            ToolInvocation(name="start_donation_flow", arguments={"campaignId": "camp-1", "amount": 50000})
        )
        orchestrator = make_orchestrator(provider, executor, ctx)
        reply = await orchestrator.run("mau donasi 50rb ke program sekolah")

        assert "*Konfirmasi Donasi*" in reply
        assert isinstance(ctx.session.flow, DonationFlow)
        assert ctx.session.flow.step == DonationStep.CONFIRM
        assert provider.complete.await_count == 1
        assert orchestrator.tool_calls[0]["name"] == "start_donation_flow"

    @pytest.mark.asyncio
    async def test_unregistered_donor_told_to_register(self, guest_session, catalog, facade, gold_prices, executor):
        guest_ctx = FlowContext(session=guest_session, catalog=catalog, facade=facade, gold_prices=gold_prices)
        provider = make_provider(
            ToolInvocation(name="start_qurban_flow"),
            PlainReply(text="Boleh kami minta nama lengkap dan email Anda?"),
        )
        reply = await make_orchestrator(provider, executor, guest_ctx).run("mau qurban")

        assert reply == "Boleh kami minta nama lengkap dan email Anda?"
        assert guest_session.flow is None
        assert transcript_of(provider)[-1].content == RESULT_MUST_REGISTER

    @pytest.mark.asyncio
    async def test_active_flow_not_replaced(self, ctx, executor):
        ctx.session.flow = QurbanFlow(step=QurbanStep.SELECT_PACKAGE)
        provider = make_provider(ToolInvocation(name="start_zakat_flow"), PlainReply(text="Selesaikan dulu ya."))
        await make_orchestrator(provider, executor, ctx).run("zakat")

        assert ctx.session.flow.type == FlowType.QURBAN
        assert transcript_of(provider)[-1].content == RESULT_FLOW_ACTIVE.format(flow="qurban")

    @pytest.mark.asyncio
    async def test_flow_that_ends_at_start_still_returns_its_message(self, ctx, executor, catalog):
        catalog.qurban_periods = []
        provider = make_provider(ToolInvocation(name="start_qurban_flow"))
        reply = await make_orchestrator(provider, executor, ctx).run("qurban")
        assert "belum ada periode qurban" in reply
        assert ctx.session.flow is None
