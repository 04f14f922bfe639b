import math

from bantuanku_bot.services.catalog_service import (
    SETTING_QURBAN_COW_FEE,
    SETTING_QURBAN_GOAT_FEE,
    Catalog,
    PackageOption,
    setting_int,
)
from bantuanku_bot.services.flows.common import (
    CANCEL_HINT,
    MSG_CONFIRM_REPROMPT,
    MSG_CREATE_FAILED,
    MSG_NEW_MESSAGE_HINT,
    FlowContext,
    numbered,
    transaction_summary,
)
from bantuanku_bot.services.flows.state import QurbanFlow, QurbanStep, advance
from bantuanku_bot.services.formatting import animal_label, fmt
from bantuanku_bot.services.parsers import (
    Confirmation,
    is_reserved_word,
    match_confirmation,
    match_list_selection,
    parse_count,
)
from bantuanku_bot.services.transaction_service import PRODUCT_QURBAN, TransactionRequest

MSG_CANCELLED = "Pemesanan qurban dibatalkan. " + MSG_NEW_MESSAGE_HINT
MSG_NO_PERIOD = "Maaf, saat ini belum ada periode qurban yang aktif."
MSG_SOLD_OUT = "Maaf, semua paket qurban untuk periode ini sudah habis."


def qurban_admin_fee(catalog: Catalog, package: PackageOption) -> int:
    """Amil fee per unit. Shared packages split the per-animal fee across its slots."""
    if package.animal_type == "cow":
        base = setting_int(catalog, SETTING_QURBAN_COW_FEE, 0)
    else:
        base = setting_int(catalog, SETTING_QURBAN_GOAT_FEE, 0)
    if package.is_shared:
        return math.ceil(base / package.slots_per_animal)
    return base


def package_line(package: PackageOption) -> str:
    kind = f"Patungan 1/{package.slots_per_animal}" if package.is_shared else "Perorangan"
    if package.is_shared:
        left = f"sisa {package.available_slots} slot"
    else:
        left = f"sisa {package.available_stock} ekor"
    return f"{package.name} ({animal_label(package.animal_type)}, {kind}) - Rp {fmt(package.price)}, {left}"


def available_packages(catalog: Catalog, period_id: str) -> list[PackageOption]:
    return [p for p in catalog.list_qurban_packages(period_id) if p.has_availability]


def package_menu(title: str, packages: list[PackageOption]) -> str:
    return "\n".join(
        [
            f"*{title}*",
            "",
            "Pilih paket qurban:",
            *numbered([package_line(p) for p in packages]),
            "",
            "Ketik nomor paket.",
            CANCEL_HINT,
        ]
    )


def period_menu(periods) -> str:
    return "\n".join(
        [
            "*Pilih Periode Qurban*",
            "",
            *numbered([p.name for p in periods]),
            "",
            "Ketik nomor periode.",
            CANCEL_HINT,
        ]
    )


async def start(ctx: FlowContext, flow: QurbanFlow) -> str:
    periods = ctx.catalog.list_active_qurban_periods()
    if not periods:
        ctx.end()
        return MSG_NO_PERIOD
    flow.period_options = periods
    if len(periods) == 1:
        return _period_selected(ctx, flow, 0)
    return period_menu(periods)


async def handle(ctx: FlowContext, flow: QurbanFlow, text: str) -> str:
    if flow.step == QurbanStep.SELECT_PERIOD:
        index = match_list_selection(text, len(flow.period_options))
        if index is None:
            return f"Pilihan tidak valid. Ketik nomor periode (1-{len(flow.period_options)})."
        return _period_selected(ctx, flow, index)

    if flow.step == QurbanStep.SELECT_PACKAGE:
        return _select_package(ctx, flow, text)

    if flow.step == QurbanStep.ASK_QUANTITY:
        quantity = parse_count(text, 1, flow.package.available_stock)
        if quantity is None:
            return f"Mohon masukkan jumlah hewan (1-{flow.package.available_stock})."
        flow.quantity = quantity
        advance(flow, QurbanStep.ASK_ON_BEHALF)
        return _on_behalf_prompt()

    if flow.step == QurbanStep.ASK_ON_BEHALF:
        return _ask_on_behalf(flow, text)

    return await _confirm(ctx, flow, text)


def _period_selected(ctx: FlowContext, flow: QurbanFlow, index: int) -> str:
    period = flow.period_options[index]
    packages = available_packages(ctx.catalog, period.id)
    if not packages:
        ctx.end()
        return MSG_SOLD_OUT
    flow.period = period
    flow.package_options = packages
    advance(flow, QurbanStep.SELECT_PACKAGE)
    return package_menu(f"Qurban {period.name}", packages)


def _on_behalf_prompt() -> str:
    return "Atas nama siapa qurban ini (shohibul qurban)?\n\nKetik nama (misal: *Ahmad bin Abdullah*)."


def _select_package(ctx: FlowContext, flow: QurbanFlow, text: str) -> str:
    index = match_list_selection(text, len(flow.package_options))
    if index is None:
        return f"Pilihan tidak valid. Ketik nomor paket (1-{len(flow.package_options)})."

    package = flow.package_options[index]
    flow.package = package
    flow.admin_fee_per_unit = qurban_admin_fee(ctx.catalog, package)

    if package.is_shared:
        flow.quantity = 1
        advance(flow, QurbanStep.ASK_ON_BEHALF)
        return f"Anda memilih *{package.name}* (patungan, 1 slot).\n\n{_on_behalf_prompt()}"

    advance(flow, QurbanStep.ASK_QUANTITY)
    return (
        f"Anda memilih *{package.name}*.\n\n"
        f"Berapa ekor yang ingin Anda qurbankan? (1-{package.available_stock})"
    )


def _ask_on_behalf(flow: QurbanFlow, text: str) -> str:
    name = " ".join(text.split())
    if len(name) < 2 or is_reserved_word(name):
        return "Mohon masukkan nama shohibul qurban. Contoh: *Ahmad bin Abdullah*"
    flow.on_behalf_of = name

    package = flow.package
    subtotal = package.price * flow.quantity
    admin_fee = flow.admin_fee_per_unit * flow.quantity
    flow.total_amount = subtotal + admin_fee
    advance(flow, QurbanStep.CONFIRM)

    lines = [
        "*Konfirmasi Qurban*",
        "",
        f"Periode: {flow.period.name}",
        f"Paket: {package.name}",
        f"Jumlah: {flow.quantity} × Rp {fmt(package.price)}",
        f"Atas Nama: {flow.on_behalf_of}",
    ]
    if admin_fee:
        lines.append(f"Biaya Admin: Rp {fmt(admin_fee)}")
    lines.extend(["", f"*Total: Rp {fmt(flow.total_amount)}*", "", MSG_CONFIRM_REPROMPT])
    return "\n".join(lines)


async def _confirm(ctx: FlowContext, flow: QurbanFlow, text: str) -> str:
    confirmation = match_confirmation(text)
    if confirmation == Confirmation.NO:
        ctx.end()
        return MSG_CANCELLED
    if confirmation != Confirmation.YES:
        return MSG_CONFIRM_REPROMPT

    package = flow.package
    record = ctx.create_transaction(
        TransactionRequest(
            product_type=PRODUCT_QURBAN,
            product_id=package.package_period_id,
            quantity=flow.quantity,
            unit_price=package.price,
            admin_fee=flow.admin_fee_per_unit * flow.quantity,
            donor_name=ctx.donor_name,
            donor_email=ctx.session.donor_email,
            donor_phone=ctx.session.phone,
            donatur_id=ctx.session.donatur_id,
            type_specific_data={
                "payment_type": "full",
                "period_id": flow.period.id,
                "package_id": package.package_id,
                "on_behalf_of": flow.on_behalf_of,
            },
        )
    )
    ctx.end()
    if record is None:
        return MSG_CREATE_FAILED
    details = [
        f"Paket: {package.name}",
        f"Jumlah: {flow.quantity}",
        f"Atas Nama: {flow.on_behalf_of}",
    ]
    return transaction_summary(ctx, "Pemesanan qurban berhasil dibuat!", record, details)
