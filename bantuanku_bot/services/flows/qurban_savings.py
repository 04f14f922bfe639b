"""Tabungan qurban: pick a package, then a reminder schedule. Opens a savings
plan; deposits are made later through the savings deposit flow."""

from bantuanku_bot.services.flows.common import (
    CANCEL_HINT,
    MSG_NEW_MESSAGE_HINT,
    FlowContext,
    numbered,
)
from bantuanku_bot.services.flows.qurban import (
    MSG_NO_PERIOD,
    MSG_SOLD_OUT,
    available_packages,
    package_menu,
    period_menu,
    qurban_admin_fee,
)
from bantuanku_bot.services.flows.state import QurbanSavingsFlow, SavingsStep, advance
from bantuanku_bot.services.formatting import animal_label, fmt
from bantuanku_bot.services.parsers import (
    Confirmation,
    match_confirmation,
    match_list_selection,
    normalize,
    parse_weekday,
)
from bantuanku_bot.services.transaction_service import SavingsRequest

MONTHLY = "monthly"
WEEKLY = "weekly"

INSTALLMENT_OPTIONS = {
    MONTHLY: [3, 6, 12, 24],
    WEEKLY: [12, 24, 48],
}
FREQUENCY_LABELS = {MONTHLY: "Bulanan", WEEKLY: "Mingguan"}
FREQUENCY_UNITS = {MONTHLY: "bulan", WEEKLY: "minggu"}
DAY_NAMES = ["", "Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu"]
MAX_MONTHLY_DAY = 28

MSG_CANCELLED = "Tabungan qurban dibatalkan. " + MSG_NEW_MESSAGE_HINT
MSG_CONFIRM_REPROMPT = "Ketik *Ya* untuk membuka tabungan atau *Batal* untuk membatalkan."


def installment_amount(target_amount: int, count: int) -> int:
    return -(-target_amount // count)


async def start(ctx: FlowContext, flow: QurbanSavingsFlow) -> str:
    periods = ctx.catalog.list_active_qurban_periods()
    if not periods:
        ctx.end()
        return MSG_NO_PERIOD
    flow.period_options = periods
    if len(periods) == 1:
        return _period_selected(ctx, flow, 0)
    return period_menu(periods)


async def handle(ctx: FlowContext, flow: QurbanSavingsFlow, text: str) -> str:
    handler = _HANDLERS[flow.step]
    return await handler(ctx, flow, text)


def _period_selected(ctx: FlowContext, flow: QurbanSavingsFlow, index: int) -> str:
    period = flow.period_options[index]
    packages = available_packages(ctx.catalog, period.id)
    if not packages:
        ctx.end()
        return MSG_SOLD_OUT
    flow.period = period
    flow.package_options = packages
    advance(flow, SavingsStep.SELECT_PACKAGE)
    return package_menu(f"Tabungan Qurban {period.name}", packages)


async def _select_period(ctx: FlowContext, flow: QurbanSavingsFlow, text: str) -> str:
    index = match_list_selection(text, len(flow.period_options))
    if index is None:
        return f"Pilihan tidak valid. Ketik nomor periode (1-{len(flow.period_options)})."
    return _period_selected(ctx, flow, index)


async def _select_package(ctx: FlowContext, flow: QurbanSavingsFlow, text: str) -> str:
    index = match_list_selection(text, len(flow.package_options))
    if index is None:
        return f"Ketik angka 1-{len(flow.package_options)} untuk memilih paket."

    package = flow.package_options[index]
    flow.package = package
    flow.admin_fee = qurban_admin_fee(ctx.catalog, package)
    flow.target_amount = package.price + flow.admin_fee
    advance(flow, SavingsStep.ASK_FREQUENCY)

    target = f"Target: Rp {fmt(flow.target_amount)}"
    if flow.admin_fee:
        target += f" (termasuk admin Rp {fmt(flow.admin_fee)})"
    return "\n".join(
        [
            "*Tabungan Qurban - Jadwal Cicilan*",
            f"Paket: {package.name}",
            target,
            "",
            "Anda ingin diingatkan cicilan setiap:",
            "1. *Bulanan*",
            "2. *Mingguan*",
            "",
            "Ketik *1* atau *2*.",
            CANCEL_HINT,
        ]
    )


async def _ask_frequency(ctx: FlowContext, flow: QurbanSavingsFlow, text: str) -> str:
    answer = normalize(text)
    if answer == "1" or "bulan" in answer:
        flow.frequency = MONTHLY
    elif answer == "2" or "minggu" in answer:
        flow.frequency = WEEKLY
    else:
        return "Ketik *1* untuk Bulanan atau *2* untuk Mingguan."
    advance(flow, SavingsStep.ASK_INSTALLMENT_COUNT)

    options = INSTALLMENT_OPTIONS[flow.frequency]
    return "\n".join(
        [
            "*Tabungan Qurban - Jumlah Cicilan*",
            f"Frekuensi: {FREQUENCY_LABELS[flow.frequency]}",
            "",
            "Mau berapa kali cicilan?",
            *numbered([f"{count}x cicilan" for count in options]),
            "",
            "Ketik *nomor* untuk memilih.",
        ]
    )


async def _ask_installment_count(ctx: FlowContext, flow: QurbanSavingsFlow, text: str) -> str:
    options = INSTALLMENT_OPTIONS[flow.frequency]
    # A menu number wins over a literal count ("3" on the monthly menu means 12x).
    index = match_list_selection(text, len(options))
    if index is not None:
        count = options[index]
    else:
        answer = normalize(text).rstrip("x")
        count = int(answer) if answer.isdigit() and int(answer) in options else None
    if count is None:
        return "Pilih salah satu: " + ", ".join(f"{i}. {c}x" for i, c in enumerate(options, start=1))

    flow.installment_count = count
    flow.installment_amount = installment_amount(flow.target_amount, count)
    advance(flow, SavingsStep.ASK_INSTALLMENT_DAY)

    unit = FREQUENCY_UNITS[flow.frequency]
    header = f"Cicilan: {count}x @ Rp {fmt(flow.installment_amount)}/{unit}"
    if flow.frequency == MONTHLY:
        return "\n".join(
            [
                "*Tabungan Qurban - Tanggal Pengingat*",
                header,
                "",
                f"Mau diingatkan setiap tanggal berapa? (1-{MAX_MONTHLY_DAY})",
                "",
                "Ketik angka tanggal (misal: *1*, *15*, *25*).",
            ]
        )
    return "\n".join(
        [
            "*Tabungan Qurban - Hari Pengingat*",
            header,
            "",
            "Mau diingatkan setiap hari apa?",
            *numbered(DAY_NAMES[1:]),
            "",
            "Ketik *nomor* hari.",
        ]
    )


async def _ask_installment_day(ctx: FlowContext, flow: QurbanSavingsFlow, text: str) -> str:
    if flow.frequency == MONTHLY:
        answer = normalize(text)
        day = int(answer) if answer.isdigit() and 1 <= int(answer) <= MAX_MONTHLY_DAY else None
        if day is None:
            return f"Ketik angka tanggal antara 1-{MAX_MONTHLY_DAY}."
        day_label = f"Tanggal {day} setiap bulan"
    else:
        day = parse_weekday(text)
        if day is None:
            return "Ketik angka 1-7 (1=Senin, 7=Minggu) atau nama hari."
        day_label = f"Setiap hari {DAY_NAMES[day]}"

    flow.installment_day = day
    advance(flow, SavingsStep.CONFIRM)

    package = flow.package
    kind = f"Patungan {package.slots_per_animal} orang" if package.is_shared else "Individu"
    lines = [
        "*Konfirmasi Tabungan Qurban*",
        "",
        f"Periode: {flow.period.name}",
        f"Paket: {package.name}",
        f"Jenis: {animal_label(package.animal_type)} ({kind})",
        f"Harga Paket: Rp {fmt(package.price)}",
    ]
    if flow.admin_fee:
        lines.append(f"Admin: Rp {fmt(flow.admin_fee)}")
    lines.extend(
        [
            f"*Target Tabungan: Rp {fmt(flow.target_amount)}*",
            "",
            f"Frekuensi: {FREQUENCY_LABELS[flow.frequency]}",
            f"Jumlah Cicilan: {flow.installment_count}x",
            f"Cicilan per {FREQUENCY_UNITS[flow.frequency]}: *Rp {fmt(flow.installment_amount)}*",
            f"Pengingat: {day_label}",
            "",
            MSG_CONFIRM_REPROMPT,
        ]
    )
    return "\n".join(lines)


async def _confirm(ctx: FlowContext, flow: QurbanSavingsFlow, text: str) -> str:
    confirmation = match_confirmation(text)
    if confirmation == Confirmation.NO:
        ctx.end()
        return MSG_CANCELLED
    if confirmation != Confirmation.YES:
        return MSG_CONFIRM_REPROMPT

    record = ctx.open_savings(
        SavingsRequest(
            donatur_id=ctx.session.donatur_id,
            donor_name=ctx.donor_name,
            donor_phone=ctx.session.phone,
            target_period_id=flow.period.id,
            target_package_period_id=flow.package.package_period_id,
            target_amount=flow.target_amount,
            installment_frequency=flow.frequency,
            installment_count=flow.installment_count,
            installment_amount=flow.installment_amount,
            installment_day=flow.installment_day,
        )
    )
    ctx.end()
    if record is None:
        return "Gagal membuat tabungan. Silakan coba lagi beberapa saat lagi."

    return "\n".join(
        [
            "*Tabungan Qurban berhasil dibuka!*",
            "",
            f"No. Tabungan: *{record.savings_number}*",
            f"Paket: {flow.package.name}",
            f"Periode: {flow.period.name}",
            f"Target: Rp {fmt(record.target_amount)}",
            f"Cicilan: {record.installment_count}x @ Rp {fmt(record.installment_amount)}/"
            f"{FREQUENCY_UNITS[flow.frequency]}",
            "",
            "Untuk melakukan setoran, ketik *setor tabungan*.",
            "Untuk cek saldo tabungan, ketik *cek tabungan*.",
        ]
    )


_HANDLERS = {
    SavingsStep.SELECT_PERIOD: _select_period,
    SavingsStep.SELECT_PACKAGE: _select_package,
    SavingsStep.ASK_FREQUENCY: _ask_frequency,
    SavingsStep.ASK_INSTALLMENT_COUNT: _ask_installment_count,
    SavingsStep.ASK_INSTALLMENT_DAY: _ask_installment_day,
    SavingsStep.CONFIRM: _confirm,
}
