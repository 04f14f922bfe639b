from bantuanku_bot.services.catalog_service import SavingsOption
from bantuanku_bot.services.flows.common import CANCEL_HINT, MSG_CREATE_FAILED, PAYMENT_CHOICES, FlowContext
from bantuanku_bot.services.flows.state import DepositStep, SavingsDepositFlow, advance
from bantuanku_bot.services.formatting import fmt
from bantuanku_bot.services.parsers import Confirmation, match_confirmation, match_list_selection, parse_amount
from bantuanku_bot.services.transaction_service import PRODUCT_QURBAN, TransactionRequest

MIN_DEPOSIT = 10_000

MSG_NO_SAVINGS = "Anda belum memiliki tabungan qurban aktif. Ketik *nabung qurban* untuk membuka tabungan baru."


def _progress_pct(savings: SavingsOption) -> int:
    if savings.target_amount <= 0:
        return 0
    return round(savings.current_amount / savings.target_amount * 100)


def _amount_prompt(savings: SavingsOption) -> str:
    unit = "bulan" if savings.installment_frequency == "monthly" else "minggu"
    paid = savings.current_amount // savings.installment_amount if savings.installment_amount else 0
    return "\n".join(
        [
            "*Setor Tabungan Qurban*",
            "",
            f"No. Tabungan: {savings.savings_number}",
            f"Paket: {savings.package_name}",
            f"Target: Rp {fmt(savings.target_amount)}",
            f"Terkumpul: Rp {fmt(savings.current_amount)} ({_progress_pct(savings)}%)",
            f"Sisa: Rp {fmt(savings.remaining)}",
            f"Cicilan: {savings.installment_count}x @ Rp {fmt(savings.installment_amount)}/{unit}",
            f"Sudah setor: {paid}x dari {savings.installment_count}x",
            "",
            f"Nominal setoran: *Rp {fmt(savings.installment_amount)}*",
            "",
            "Ketik *Ya* untuk setor dengan nominal di atas.",
            "Atau ketik nominal lain (misal: *700rb*, *1jt*).",
            CANCEL_HINT,
        ]
    )


async def start(ctx: FlowContext, flow: SavingsDepositFlow) -> str:
    savings = ctx.catalog.list_active_savings(ctx.session.phone, ctx.session.donatur_id)
    if not savings:
        ctx.end()
        return MSG_NO_SAVINGS

    if len(savings) == 1:
        flow.savings = savings[0]
        advance(flow, DepositStep.ASK_AMOUNT)
        return _amount_prompt(flow.savings)

    flow.savings_options = savings
    advance(flow, DepositStep.SELECT_SAVINGS)
    lines = ["*Setor Tabungan Qurban*", "", "Anda memiliki beberapa tabungan aktif:", ""]
    for i, s in enumerate(savings, start=1):
        lines.append(f"{i}. {s.savings_number} - {s.package_name}")
        lines.append(f"   Progress: Rp {fmt(s.current_amount)} / Rp {fmt(s.target_amount)} ({_progress_pct(s)}%)")
    lines.extend(["", "Ketik *nomor* untuk memilih tabungan.", CANCEL_HINT])
    return "\n".join(lines)


async def handle(ctx: FlowContext, flow: SavingsDepositFlow, text: str) -> str:
    if flow.step == DepositStep.SELECT_SAVINGS:
        index = match_list_selection(text, len(flow.savings_options))
        if index is None:
            return f"Ketik angka 1-{len(flow.savings_options)} untuk memilih tabungan."
        flow.savings = flow.savings_options[index]
        advance(flow, DepositStep.ASK_AMOUNT)
        return _amount_prompt(flow.savings)

    return await _ask_amount(ctx, flow, text)


async def _ask_amount(ctx: FlowContext, flow: SavingsDepositFlow, text: str) -> str:
    savings = flow.savings
    confirmation = match_confirmation(text)
    if confirmation == Confirmation.YES:
        amount = savings.installment_amount
    elif confirmation == Confirmation.NO:
        ctx.end()
        return "Setoran dibatalkan."
    else:
        amount = parse_amount(text)
        if amount is None:
            return (
                f"Ketik *Ya* untuk setor Rp {fmt(savings.installment_amount)}, "
                "atau ketik nominal lain (misal: *700rb*)."
            )
        if amount < MIN_DEPOSIT:
            return f"Minimal setoran Rp {fmt(MIN_DEPOSIT)}. Silakan ketik nominal yang valid."

    record = ctx.create_transaction(
        TransactionRequest(
            product_type=PRODUCT_QURBAN,
            product_id=savings.target_package_period_id,
            quantity=1,
            unit_price=amount,
            donor_name=ctx.donor_name,
            donor_email=ctx.session.donor_email,
            donor_phone=ctx.session.phone,
            donatur_id=ctx.session.donatur_id,
            include_unique_code=False,
            type_specific_data={
                "payment_type": "savings",
                "savings_id": savings.id,
                "savings_number": savings.savings_number,
                "target_package_period_id": savings.target_package_period_id,
                "category": "qurban_savings",
            },
        )
    )
    ctx.end()
    if record is None:
        return MSG_CREATE_FAILED

    remaining = max(savings.remaining - amount, 0)
    lines = [
        "*Setoran tabungan berhasil dibuat!*",
        "",
        f"No. Transaksi: {record.transaction_number}",
        f"Tabungan: {savings.savings_number}",
        f"Nominal Setoran: *Rp {fmt(amount)}*",
        f"Sisa target: Rp {fmt(remaining)}",
        "Status: Menunggu Pembayaran",
    ]
    invoice_url = ctx.invoice_url(record.id)
    if invoice_url:
        lines.extend(["", f"Link Invoice: {invoice_url}"])
    lines.extend(["", *PAYMENT_CHOICES])
    return "\n".join(lines)
