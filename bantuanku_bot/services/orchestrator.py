"""Bounded tool-calling loop between the donor and the model.

Each round the model either answers (respond_to_user or a bare text reply),
which ends the loop, or calls a tool whose string result is appended to the
transcript for the next round. Flow-start tools hand the conversation over to
the flow engine and end the loop with the flow's first prompt.
"""

import re
from typing import Optional

from bantuanku_bot.logging_config import get_logger
from bantuanku_bot.services.flows.common import FlowContext
from bantuanku_bot.services.flows.engine import FlowAlreadyActiveError, start_flow
from bantuanku_bot.services.flows.state import (
    DonationFlow,
    FidyahFlow,
    FlowState,
    QurbanFlow,
    QurbanSavingsFlow,
    SavingsDepositFlow,
    ZakatFlow,
)
from bantuanku_bot.services.llm import (
    ChatTurn,
    ImageAttachment,
    LLMProvider,
    LLMProviderError,
    PlainReply,
    ToolInvocation,
    ToolResult,
)
from bantuanku_bot.services.llm.base import TranscriptItem
from bantuanku_bot.services.tool_executor import ToolExecutor, amount_arg, text_arg
from bantuanku_bot.services.tools import FLOW_START_TOOLS, TOOL_DEFINITIONS, ToolName

logger = get_logger("orchestrator")

MAX_ROUNDS = 5
HISTORY_TURNS = 10

MSG_APOLOGY = "Maaf, terjadi gangguan pada sistem kami. Silakan coba lagi nanti."
MSG_PROOF_REQUIRED = (
    "Untuk konfirmasi pembayaran, mohon kirimkan foto bukti transfer Anda. "
    "Tim kami akan memverifikasi setelah bukti diterima sistem."
)

RESULT_MUST_REGISTER = (
    "Donatur belum terdaftar. Jalankan FLOW REGISTRASI: minta Nama Lengkap dan Email, "
    "lalu panggil register_donatur sebelum memulai proses ini."
)
RESULT_FLOW_ACTIVE = (
    "Donatur sedang berada dalam proses {flow} yang belum selesai. Jangan mulai proses baru; "
    "minta donatur menyelesaikan proses tersebut atau ketik *batal*."
)
RESULT_NO_IMAGE = (
    "Pesan ini tidak berisi gambar bukti transfer. confirm_payment hanya boleh dipanggil ketika donatur "
    "mengirim foto bukti transfer. Minta donatur mengirimkan fotonya."
)
RESULT_TOOL_ERROR = "Terjadi kesalahan saat menjalankan {tool}. Sampaikan permohonan maaf dan minta donatur mencoba lagi."

# Subject, optional "anda sudah kami", outcome. "berhasil dibuat" is an order
# summary and "terima kasih" a courtesy, neither claims a payment.
CONFIRMATION_PATTERN = re.compile(
    r"\b(pembayaran|transfer|bukti( transfer| pembayaran)?|donasi)\s+"
    r"(anda\s+)?((sudah|telah)\s+)?(kami\s+)?"
    r"(diterima|terima(?!\s+kasih)|terverifikasi|diverifikasi|berhasil(?!\s+(dibuat|dibuka|dicatat))|sukses|lunas|dikonfirmasi)\b"
    r"|\bpayment\s+(has\s+been\s+)?(received|verified|confirmed|successful)\b"
    r"|sedang dalam proses verifikasi",
    re.IGNORECASE,
)


def claims_payment_confirmation(text: str) -> bool:
    return bool(CONFIRMATION_PATTERN.search(text or ""))


def build_flow(tool: ToolName, args: dict) -> FlowState:
    if tool == ToolName.START_ZAKAT_FLOW:
        return ZakatFlow(calculator_type=text_arg(args, "calculatorType") or None)
    if tool == ToolName.START_DONATION_FLOW:
        return DonationFlow(campaign_id=text_arg(args, "campaignId"), amount=amount_arg(args.get("amount")))
    if tool == ToolName.START_FIDYAH_FLOW:
        return FidyahFlow(campaign_id=text_arg(args, "campaignId"))
    if tool == ToolName.START_QURBAN_FLOW:
        return QurbanFlow()
    if tool == ToolName.START_QURBAN_SAVINGS_FLOW:
        return QurbanSavingsFlow()
    if tool == ToolName.START_SAVINGS_DEPOSIT_FLOW:
        return SavingsDepositFlow()
    raise ValueError(f"Not a flow-start tool: {tool.value}")


class Orchestrator:
    def __init__(
        self,
        provider: LLMProvider,
        executor: ToolExecutor,
        flow_ctx: FlowContext,
        system_prompt: str,
        max_rounds: int = MAX_ROUNDS,
    ):
        self.provider = provider
        self.executor = executor
        self.flow_ctx = flow_ctx
        self.system_prompt = system_prompt
        self.max_rounds = max_rounds
        self.tool_calls: list[dict] = []

    @property
    def session(self):
        return self.flow_ctx.session

    def _transcript(self, text: str) -> list[TranscriptItem]:
        history = [ChatTurn(role=m.role, content=m.content) for m in self.session.recent_history(HISTORY_TURNS)]
        return history + [ChatTurn(role="user", content=text)]

    async def run(self, text: str, image: Optional[ImageAttachment] = None) -> str:
        transcript = self._transcript(text)
        last_result: Optional[str] = None

        for round_no in range(1, self.max_rounds + 1):
            try:
                completion = await self.provider.complete(self.system_prompt, transcript, TOOL_DEFINITIONS, image)
            except LLMProviderError as e:
                logger.error(
                    "LLM provider failed",
                    extra={"context": {"phone": self.session.phone, "provider": e.provider, "round": round_no, "error": str(e)}},
                )
                return last_result or MSG_APOLOGY

            if isinstance(completion, PlainReply):
                return self._final_reply(completion.text, last_result)

            tool = ToolName.parse(completion.name)
            if tool == ToolName.RESPOND_TO_USER:
                return self._final_reply(text_arg(completion.arguments, "message"), last_result)

            call_id = completion.call_id or f"call_{round_no}_{completion.name}"
            invocation = ToolInvocation(name=completion.name, arguments=completion.arguments or {}, call_id=call_id)

            if tool in FLOW_START_TOOLS:
                started, result = await self._start_flow(tool, invocation.arguments)
                self._record(invocation, result)
                if started:
                    return result
            else:
                result = await self._execute(tool, invocation)

            last_result = result
            transcript.extend([invocation, ToolResult(name=invocation.name, content=result, call_id=call_id)])

        logger.warning(
            "Tool loop exhausted",
            extra={"context": {"phone": self.session.phone, "rounds": self.max_rounds, "tools": [c["name"] for c in self.tool_calls]}},
        )
        return last_result or MSG_APOLOGY

    def _record(self, invocation: ToolInvocation, result: str) -> None:
        self.tool_calls.append({"name": invocation.name, "arguments": invocation.arguments, "result": result})
        logger.info(
            "Tool call",
            extra={
                "context": {
                    "phone": self.session.phone,
                    "tool": invocation.name,
                    "arguments": invocation.arguments,
                    "result": result[:200],
                }
            },
        )

    def _final_reply(self, text: str, last_result: Optional[str]) -> str:
        text = (text or "").strip()
        if not text:
            return last_result or MSG_APOLOGY
        if claims_payment_confirmation(text):
            if self.executor.confirmed_payment:
                return self.executor.confirmed_payment
            logger.warning(
                "Unbacked payment confirmation replaced",
                extra={"context": {"phone": self.session.phone, "reply": text[:200]}},
            )
            return MSG_PROOF_REQUIRED
        return text

    async def _start_flow(self, tool: ToolName, args: dict) -> tuple[bool, str]:
        if not self.session.is_registered:
            return False, RESULT_MUST_REGISTER
        try:
            reply = await start_flow(self.flow_ctx, build_flow(tool, args))
        except FlowAlreadyActiveError as e:
            return False, RESULT_FLOW_ACTIVE.format(flow=e.active.value)
        return True, reply

    async def _execute(self, tool: Optional[ToolName], invocation: ToolInvocation) -> str:
        if tool is None:
            result = f'Tool "{invocation.name}" tidak dikenal.'
        elif tool == ToolName.CONFIRM_PAYMENT and self.executor.image is None:
            result = RESULT_NO_IMAGE
        else:
            try:
                result = await self.executor.execute(tool, invocation.arguments)
            except Exception as e:
                logger.error(
                    "Tool execution failed",
                    extra={"context": {"phone": self.session.phone, "tool": tool.value, "error": str(e)}},
                    exc_info=True,
                )
                result = RESULT_TOOL_ERROR.format(tool=tool.value)
        self._record(invocation, result)
        return result
