from bantuanku_bot.services.flows.common import (
    CANCEL_HINT,
    MSG_CONFIRM_REPROMPT,
    MSG_CREATE_FAILED,
    MSG_NEW_MESSAGE_HINT,
    FlowContext,
    transaction_summary,
)
from bantuanku_bot.services.flows.state import DonationFlow, DonationStep, advance
from bantuanku_bot.services.formatting import fmt
from bantuanku_bot.services.parsers import Confirmation, match_confirmation, parse_amount
from bantuanku_bot.services.transaction_service import PRODUCT_CAMPAIGN, TransactionRequest

MIN_DONATION = 10_000

MSG_CANCELLED = "Donasi dibatalkan. " + MSG_NEW_MESSAGE_HINT
MSG_CAMPAIGN_UNAVAILABLE = "Maaf, program donasi ini sudah tidak aktif. Silakan pilih program lain."


async def start(ctx: FlowContext, flow: DonationFlow) -> str:
    campaign = ctx.catalog.get_campaign(flow.campaign_id)
    if not campaign or not campaign.is_active:
        ctx.end()
        return MSG_CAMPAIGN_UNAVAILABLE
    flow.campaign_name = flow.campaign_name or campaign.title

    if flow.amount is not None and flow.amount >= MIN_DONATION:
        advance(flow, DonationStep.CONFIRM)
        return _confirm_prompt(flow)

    flow.amount = None
    return "\n".join(
        [
            f"*Donasi: {flow.campaign_name}*",
            "",
            "Berapa nominal donasi yang ingin Anda berikan?",
            "Contoh: *50rb*, *100000*, atau *1jt*",
            "",
            CANCEL_HINT,
        ]
    )


async def handle(ctx: FlowContext, flow: DonationFlow, text: str) -> str:
    if flow.step == DonationStep.ASK_AMOUNT:
        return await _ask_amount(ctx, flow, text)
    return await _confirm(ctx, flow, text)


def _confirm_prompt(flow: DonationFlow) -> str:
    return "\n".join(
        [
            "*Konfirmasi Donasi*",
            "",
            f"Program: {flow.campaign_name}",
            f"Nominal: Rp {fmt(flow.amount)}",
            "",
            MSG_CONFIRM_REPROMPT,
        ]
    )


async def _ask_amount(ctx: FlowContext, flow: DonationFlow, text: str) -> str:
    amount = parse_amount(text)
    if amount is None:
        return "Mohon masukkan nominal yang valid. Contoh: *50rb* atau *100000*"
    if amount < MIN_DONATION:
        return f"Minimal donasi adalah Rp {fmt(MIN_DONATION)}. Silakan masukkan nominal lain."

    flow.amount = amount
    advance(flow, DonationStep.CONFIRM)
    return _confirm_prompt(flow)


async def _confirm(ctx: FlowContext, flow: DonationFlow, text: str) -> str:
    confirmation = match_confirmation(text)
    if confirmation == Confirmation.NO:
        ctx.end()
        return MSG_CANCELLED
    if confirmation != Confirmation.YES:
        return MSG_CONFIRM_REPROMPT

    campaign = ctx.catalog.get_campaign(flow.campaign_id)
    if not campaign or not campaign.is_active:
        ctx.end()
        return MSG_CAMPAIGN_UNAVAILABLE

    record = ctx.create_transaction(
        TransactionRequest(
            product_type=PRODUCT_CAMPAIGN,
            product_id=flow.campaign_id,
            quantity=1,
            unit_price=flow.amount,
            donor_name=ctx.donor_name,
            donor_email=ctx.session.donor_email,
            donor_phone=ctx.session.phone,
            donatur_id=ctx.session.donatur_id,
        )
    )
    ctx.end()
    if record is None:
        return MSG_CREATE_FAILED
    return transaction_summary(ctx, "Donasi berhasil dibuat!", record, [f"Program: {campaign.title}"])
