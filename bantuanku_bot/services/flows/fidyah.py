"""Fidyah: persons × missed fasting days × the per-day rate, paid into a
fidyah campaign."""

from bantuanku_bot.services.catalog_service import SETTING_FIDYAH_PER_DAY, setting_int
from bantuanku_bot.services.flows.common import (
    CANCEL_HINT,
    MSG_CONFIRM_REPROMPT,
    MSG_CREATE_FAILED,
    MSG_NEW_MESSAGE_HINT,
    FlowContext,
    transaction_summary,
)
from bantuanku_bot.services.flows.state import FidyahFlow, FidyahStep, advance
from bantuanku_bot.services.formatting import fmt
from bantuanku_bot.services.parsers import Confirmation, is_reserved_word, match_confirmation, parse_count
from bantuanku_bot.services.transaction_service import PRODUCT_CAMPAIGN, TransactionRequest

DEFAULT_PRICE_PER_DAY = 45_000
MAX_PERSONS = 999
MAX_DAYS = 366

MSG_CANCELLED = "Pembayaran fidyah dibatalkan. " + MSG_NEW_MESSAGE_HINT


async def start(ctx: FlowContext, flow: FidyahFlow) -> str:
    campaign = ctx.catalog.get_campaign(flow.campaign_id)
    if not campaign or not campaign.is_active:
        ctx.end()
        return "Maaf, program fidyah tidak ditemukan atau sudah tidak aktif."
    flow.campaign_name = flow.campaign_name or campaign.title
    flow.price_per_day = setting_int(ctx.catalog, SETTING_FIDYAH_PER_DAY, DEFAULT_PRICE_PER_DAY)

    return "\n".join(
        [
            f"*{flow.campaign_name}*",
            f"Tarif fidyah: Rp {fmt(flow.price_per_day)} per hari per orang.",
            "",
            "Fidyah ini untuk berapa orang?",
            "Ketik jumlah orang (misal: *1*).",
            "",
            CANCEL_HINT,
        ]
    )


async def handle(ctx: FlowContext, flow: FidyahFlow, text: str) -> str:
    if flow.step == FidyahStep.ASK_PERSON_COUNT:
        count = parse_count(text, 1, MAX_PERSONS)
        if count is None:
            return f"Mohon masukkan jumlah orang (1-{MAX_PERSONS}). Contoh: *1*"
        flow.person_count = count
        advance(flow, FidyahStep.ASK_DAY_COUNT)
        return "Berapa hari puasa yang ditinggalkan (per orang)?\n\nKetik jumlah hari (misal: *10*)."

    if flow.step == FidyahStep.ASK_DAY_COUNT:
        days = parse_count(text, 1, MAX_DAYS)
        if days is None:
            return f"Mohon masukkan jumlah hari (1-{MAX_DAYS}). Contoh: *10*"
        flow.day_count = days
        advance(flow, FidyahStep.ASK_ON_BEHALF)
        return "Atas nama siapa fidyah ini dibayarkan?\n\nKetik nama (misal: *Ibu Siti*)."

    if flow.step == FidyahStep.ASK_ON_BEHALF:
        name = " ".join(text.split())
        if len(name) < 2 or is_reserved_word(name):
            return "Mohon masukkan nama. Contoh: *Ibu Siti*"
        flow.on_behalf_of = name
        flow.total_amount = flow.person_count * flow.day_count * flow.price_per_day
        advance(flow, FidyahStep.CONFIRM)
        return "\n".join(
            [
                "*Konfirmasi Fidyah*",
                "",
                f"Program: {flow.campaign_name}",
                f"Atas Nama: {flow.on_behalf_of}",
                f"Perhitungan: {flow.person_count} orang × {flow.day_count} hari × Rp {fmt(flow.price_per_day)}",
                "",
                f"*Total Fidyah: Rp {fmt(flow.total_amount)}*",
                "",
                MSG_CONFIRM_REPROMPT,
            ]
        )

    return await _confirm(ctx, flow, text)


async def _confirm(ctx: FlowContext, flow: FidyahFlow, text: str) -> str:
    confirmation = match_confirmation(text)
    if confirmation == Confirmation.NO:
        ctx.end()
        return MSG_CANCELLED
    if confirmation != Confirmation.YES:
        return MSG_CONFIRM_REPROMPT

    record = ctx.create_transaction(
        TransactionRequest(
            product_type=PRODUCT_CAMPAIGN,
            product_id=flow.campaign_id,
            quantity=1,
            unit_price=flow.total_amount,
            donor_name=ctx.donor_name,
            donor_email=ctx.session.donor_email,
            donor_phone=ctx.session.phone,
            donatur_id=ctx.session.donatur_id,
            type_specific_data={
                "fidyah_person_count": flow.person_count,
                "fidyah_day_count": flow.day_count,
                "price_per_day": flow.price_per_day,
                "on_behalf_of": flow.on_behalf_of,
            },
        )
    )
    ctx.end()
    if record is None:
        return MSG_CREATE_FAILED
    details = [
        f"Program: {flow.campaign_name}",
        f"Atas Nama: {flow.on_behalf_of}",
        f"Jumlah: {flow.person_count} orang × {flow.day_count} hari",
    ]
    return transaction_summary(ctx, "Pembayaran fidyah berhasil dibuat!", record, details)
