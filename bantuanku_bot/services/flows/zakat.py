"""Zakat flow: pick a zakat kind and program, answer the calculator questions,
confirm the computed amount, create the transaction.

Calculator kinds and the questions they ask:

    fitrah       jiwa -> atas nama
    maal         total harta -> hutang            (nisab: 85 g gold)
    penghasilan  penghasilan bulanan              (nisab / 12)
    pertanian    hasil panen -> irigasi           (5% / 10%)
    peternakan   nilai ternak
    bisnis       modal -> keuntungan -> piutang -> hutang
"""

from dataclasses import dataclass
from typing import Optional

from bantuanku_bot.services.catalog_service import (
    SETTING_FITRAH_AMOUNT,
    SETTING_GOLD_PRICE,
    SETTING_MAAL_PERCENTAGE,
    SETTING_NISAB_GOLD,
    SETTING_PROFESSION_PERCENTAGE,
    ZakatProgram,
    setting_int,
    setting_number,
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
from bantuanku_bot.services.flows.state import ZakatFlow, ZakatStep, advance
from bantuanku_bot.services.formatting import calculator_label, fmt, normalize_calculator_type
from bantuanku_bot.services.gold_price_service import DEFAULT_GOLD_PRICE_PER_GRAM
from bantuanku_bot.services.parsers import (
    Confirmation,
    is_none_answer,
    is_reserved_word,
    match_confirmation,
    match_list_selection,
    match_zakat_type_keyword,
    normalize,
    parse_amount,
    parse_count,
    round_half_up,
)
from bantuanku_bot.services.transaction_service import PRODUCT_ZAKAT, TransactionRequest

DEFAULT_FITRAH_AMOUNT = 45_000
DEFAULT_NISAB_GOLD_GRAMS = 85
DEFAULT_PERCENTAGE = 2.5
IRRIGATED_PERCENTAGE = 5
RAINFED_PERCENTAGE = 10

KIND_FITRAH = "fitrah"
KIND_MAAL = "maal"
KIND_PENGHASILAN = "penghasilan"
KIND_PERTANIAN = "pertanian"
KIND_PETERNAKAN = "peternakan"
KIND_BISNIS = "bisnis"
KIND_GENERIC = "generic"

_KIND_ALIASES = {
    "fitrah": KIND_FITRAH,
    "maal": KIND_MAAL,
    "mal": KIND_MAAL,
    "penghasilan": KIND_PENGHASILAN,
    "profesi": KIND_PENGHASILAN,
    "pertanian": KIND_PERTANIAN,
    "peternakan": KIND_PETERNAKAN,
    "bisnis": KIND_BISNIS,
    "perdagangan": KIND_BISNIS,
}

MSG_CANCELLED = "Proses zakat dibatalkan. " + MSG_NEW_MESSAGE_HINT


@dataclass
class ZakatCalculation:
    amount: int
    explanation: str
    not_due_message: Optional[str] = None

    @property
    def is_due(self) -> bool:
        return self.not_due_message is None and self.amount > 0


def calculator_kind(calculator_type: Optional[str]) -> str:
    return _KIND_ALIASES.get(normalize_calculator_type(calculator_type), KIND_GENERIC)


def _percent_of(base: int, percentage: float) -> int:
    return round_half_up(base * percentage / 100)


async def start(ctx: FlowContext, flow: ZakatFlow) -> str:
    if flow.calculator_type:
        calculator_type = normalize_calculator_type(flow.calculator_type)
        programs = ctx.catalog.list_zakat_programs(calculator_type)
        if programs:
            return _type_selected(flow, calculator_type, programs)
        flow.calculator_type = None
    return _type_menu(ctx, flow)


async def handle(ctx: FlowContext, flow: ZakatFlow, text: str) -> str:
    handler = _HANDLERS[flow.step]
    return await handler(ctx, flow, text)


def _type_menu(ctx: FlowContext, flow: ZakatFlow) -> str:
    programs = ctx.catalog.list_zakat_programs()
    if not programs:
        ctx.end()
        return "Maaf, belum ada jenis zakat yang tersedia saat ini."

    calculator_types: list[str] = []
    for program in programs:
        if program.calculator_type not in calculator_types:
            calculator_types.append(program.calculator_type)
    flow.type_options = calculator_types

    return "\n".join(
        [
            "*Pilih Jenis Zakat*",
            "",
            *numbered([calculator_label(t) for t in calculator_types]),
            "",
            "Ketik nomor atau nama jenis zakat.",
            CANCEL_HINT,
        ]
    )


def _type_selected(flow: ZakatFlow, calculator_type: str, programs: list[ZakatProgram]) -> str:
    flow.calculator_type = calculator_type
    if len(programs) == 1:
        flow.program = programs[0]
        advance(flow, ZakatStep.ASK_DATA)
        return _ask_data_prompt(flow)

    flow.program_options = programs
    advance(flow, ZakatStep.SELECT_PROGRAM)
    return "\n".join(
        [
            f"*{calculator_label(calculator_type)}*",
            "",
            "Zakat Anda ingin disalurkan melalui program mana?",
            *numbered([program.name for program in programs]),
            "",
            "Ketik nomor atau nama program.",
            CANCEL_HINT,
        ]
    )


def _ask_data_prompt(flow: ZakatFlow) -> str:
    kind = calculator_kind(flow.calculator_type)
    header = f"*{flow.program.name}*"
    if kind == KIND_FITRAH:
        body = (
            "Zakat fitrah ini untuk berapa jiwa?\n"
            "Anda bisa membayarkan zakat fitrah untuk diri sendiri, keluarga, atau orang lain.\n\n"
            "Ketik jumlah jiwa (misal: *3*)."
        )
    elif kind == KIND_MAAL:
        body = "Berapa total harta Anda (tabungan, emas, investasi, dll)?\n\nKetik nominal (misal: *500jt*)."
    elif kind == KIND_PENGHASILAN:
        body = "Berapa penghasilan bulanan Anda?\n\nKetik nominal (misal: *10jt*)."
    elif kind == KIND_PERTANIAN:
        body = "Berapa nilai hasil panen Anda?\n\nKetik nominal (misal: *50jt*)."
    elif kind == KIND_PETERNAKAN:
        body = "Berapa nilai ternak Anda?\n\nKetik nominal (misal: *100jt*)."
    elif kind == KIND_BISNIS:
        body = "Berapa modal usaha Anda?\n\nKetik nominal (misal: *200jt*)."
    else:
        body = "Berapa nominal harta yang ingin dizakati?\n\nKetik nominal (misal: *10jt*)."
    return f"{header}\n\n{body}\n{CANCEL_HINT}"


async def _select_type(ctx: FlowContext, flow: ZakatFlow, text: str) -> str:
    if match_confirmation(text) == Confirmation.NO:
        ctx.end()
        return MSG_CANCELLED

    calculator_type = None
    index = match_list_selection(text, len(flow.type_options))
    if index is not None:
        calculator_type = flow.type_options[index]
    else:
        keyword = match_zakat_type_keyword(text)
        if keyword:
            calculator_type = next(
                (t for t in flow.type_options if calculator_kind(t) == calculator_kind(keyword)),
                keyword,
            )

    if not calculator_type:
        return f"Pilihan tidak valid. Ketik nomor (1-{len(flow.type_options)}) atau nama jenis zakat."

    programs = ctx.catalog.list_zakat_programs(calculator_type)
    if not programs:
        return f"Maaf, program {calculator_label(calculator_type)} belum tersedia. Silakan pilih jenis zakat lain."
    return _type_selected(flow, calculator_type, programs)


async def _select_program(ctx: FlowContext, flow: ZakatFlow, text: str) -> str:
    programs = flow.program_options
    index = match_list_selection(text, len(programs))
    if index is None:
        query = normalize(text)
        matches = [p for p in programs if query and (query in p.name.lower() or p.name.lower() in query)]
        if len(matches) == 1:
            index = programs.index(matches[0])
    if index is None:
        return f"Pilihan tidak valid. Ketik nomor (1-{len(programs)}) atau nama program."

    flow.program = programs[index]
    advance(flow, ZakatStep.ASK_DATA)
    return _ask_data_prompt(flow)


async def _ask_data(ctx: FlowContext, flow: ZakatFlow, text: str) -> str:
    kind = calculator_kind(flow.calculator_type)

    if kind == KIND_FITRAH:
        jiwa = parse_count(text, 1, 999)
        if jiwa is None:
            return "Mohon masukkan jumlah jiwa (angka). Contoh: *3*"
        flow.jiwa = jiwa
        advance(flow, ZakatStep.ASK_ON_BEHALF)
        return (
            f"Zakat fitrah untuk *{jiwa} jiwa*.\n\n"
            "Atas nama siapa zakat fitrah ini?\n\n"
            f"Ketik nama (misal: *Ahmad dan keluarga*).\n{CANCEL_HINT}"
        )

    amount = parse_amount(text)
    if amount is None:
        return "Mohon masukkan nominal dalam Rupiah. Contoh: *10jt* atau *10000000*"

    if kind == KIND_MAAL:
        flow.total_harta = amount
        advance(flow, ZakatStep.ASK_DATA_HUTANG)
        return (
            "Apakah ada hutang yang perlu dikurangkan?\n\n"
            "Ketik nominal hutang (misal: *200rb*) atau ketik *0* jika tidak ada."
        )
    if kind == KIND_PERTANIAN:
        flow.hasil_panen = amount
        advance(flow, ZakatStep.ASK_DATA_IRIGASI)
        return (
            "Apakah lahan Anda menggunakan irigasi?\n\n"
            f"Ketik *1* = Ya (irigasi), tarif {IRRIGATED_PERCENTAGE}%\n"
            f"Ketik *2* = Tidak (tadah hujan), tarif {RAINFED_PERCENTAGE}%"
        )
    if kind == KIND_BISNIS:
        flow.modal_usaha = amount
        advance(flow, ZakatStep.ASK_DATA_BISNIS_KEUNTUNGAN)
        return "Berapa keuntungan usaha Anda?\n\nKetik nominal (misal: *50jt*) atau *0* jika tidak ada."

    if kind == KIND_PENGHASILAN:
        flow.income = amount
    elif kind == KIND_PETERNAKAN:
        flow.nilai_ternak = amount
    else:
        flow.total_harta = amount
    return await _calculate_and_confirm(ctx, flow)


def _parse_optional_amount(text: str) -> Optional[int]:
    if is_none_answer(text):
        return 0
    return parse_amount(text)


async def _ask_hutang(ctx: FlowContext, flow: ZakatFlow, text: str) -> str:
    hutang = _parse_optional_amount(text)
    if hutang is None:
        return "Mohon masukkan nominal hutang. Contoh: *200rb* atau ketik *0* jika tidak ada."
    flow.hutang = hutang
    return await _calculate_and_confirm(ctx, flow)


async def _ask_irigasi(ctx: FlowContext, flow: ZakatFlow, text: str) -> str:
    answer = normalize(text)
    confirmation = match_confirmation(text)
    if answer == "1" or confirmation == Confirmation.YES:
        flow.irrigated = True
    elif answer == "2" or confirmation == Confirmation.NO:
        flow.irrigated = False
    else:
        return "Ketik *1* untuk Ya (irigasi) atau *2* untuk Tidak (tadah hujan)."
    return await _calculate_and_confirm(ctx, flow)


async def _ask_keuntungan(ctx: FlowContext, flow: ZakatFlow, text: str) -> str:
    keuntungan = _parse_optional_amount(text)
    if keuntungan is None:
        return "Mohon masukkan nominal keuntungan. Contoh: *50jt* atau ketik *0* jika tidak ada."
    flow.keuntungan = keuntungan
    advance(flow, ZakatStep.ASK_DATA_BISNIS_PIUTANG)
    return "Berapa piutang usaha Anda?\n\nKetik nominal (misal: *10jt*) atau *0* jika tidak ada."


async def _ask_piutang(ctx: FlowContext, flow: ZakatFlow, text: str) -> str:
    piutang = _parse_optional_amount(text)
    if piutang is None:
        return "Mohon masukkan nominal piutang. Contoh: *10jt* atau ketik *0* jika tidak ada."
    flow.piutang = piutang
    advance(flow, ZakatStep.ASK_DATA_BISNIS_HUTANG)
    return "Berapa hutang usaha Anda?\n\nKetik nominal (misal: *5jt*) atau *0* jika tidak ada."


async def _ask_bisnis_hutang(ctx: FlowContext, flow: ZakatFlow, text: str) -> str:
    hutang = _parse_optional_amount(text)
    if hutang is None:
        return "Mohon masukkan nominal hutang usaha. Contoh: *5jt* atau ketik *0* jika tidak ada."
    flow.hutang = hutang
    return await _calculate_and_confirm(ctx, flow)


async def _ask_on_behalf(ctx: FlowContext, flow: ZakatFlow, text: str) -> str:
    name = " ".join(text.split())
    if len(name) < 2 or is_reserved_word(name):
        return "Mohon masukkan nama. Contoh: *Ahmad dan keluarga*"
    flow.on_behalf_of = name
    return await _calculate_and_confirm(ctx, flow)


async def _nisab(ctx: FlowContext) -> tuple[int, float, int]:
    fallback = setting_int(ctx.catalog, SETTING_GOLD_PRICE, DEFAULT_GOLD_PRICE_PER_GRAM)
    gold_price = await ctx.gold_prices.get_price_per_gram(fallback)
    grams = setting_number(ctx.catalog, SETTING_NISAB_GOLD, DEFAULT_NISAB_GOLD_GRAMS)
    return round_half_up(grams * gold_price), grams, gold_price


async def calculate(ctx: FlowContext, flow: ZakatFlow) -> ZakatCalculation:
    kind = calculator_kind(flow.calculator_type)

    if kind == KIND_FITRAH:
        per_head = flow.program.fitrah_amount or setting_int(ctx.catalog, SETTING_FITRAH_AMOUNT, DEFAULT_FITRAH_AMOUNT)
        amount = flow.jiwa * per_head
        return ZakatCalculation(amount, f"{flow.jiwa} jiwa × Rp {fmt(per_head)} = Rp {fmt(amount)}")

    if kind == KIND_MAAL:
        nett = flow.total_harta - (flow.hutang or 0)
        if nett <= 0:
            return ZakatCalculation(0, "", "Harta bersih Anda tidak mencukupi untuk dikenai zakat maal.")
        nisab, grams, gold_price = await _nisab(ctx)
        if nett < nisab:
            return ZakatCalculation(
                0,
                "",
                f"Harta bersih Anda Rp {fmt(nett)} belum mencapai nisab Rp {fmt(nisab)} "
                f"({grams:g} gram emas × Rp {fmt(gold_price)}/gram). "
                "Anda belum wajib membayar zakat maal, namun tetap bisa bersedekah.",
            )
        percentage = setting_number(ctx.catalog, SETTING_MAAL_PERCENTAGE, DEFAULT_PERCENTAGE)
        amount = _percent_of(nett, percentage)
        return ZakatCalculation(amount, f"{percentage:g}% × Rp {fmt(nett)} = Rp {fmt(amount)}")

    if kind == KIND_PENGHASILAN:
        nisab, _, _ = await _nisab(ctx)
        monthly_nisab = round_half_up(nisab / 12)
        if flow.income < monthly_nisab:
            return ZakatCalculation(
                0,
                "",
                f"Penghasilan Anda Rp {fmt(flow.income)} belum mencapai nisab bulanan Rp {fmt(monthly_nisab)}. "
                "Anda belum wajib membayar zakat penghasilan, namun tetap bisa bersedekah.",
            )
        percentage = setting_number(ctx.catalog, SETTING_PROFESSION_PERCENTAGE, DEFAULT_PERCENTAGE)
        amount = _percent_of(flow.income, percentage)
        return ZakatCalculation(amount, f"{percentage:g}% × Rp {fmt(flow.income)} = Rp {fmt(amount)}")

    if kind == KIND_PERTANIAN:
        percentage = IRRIGATED_PERCENTAGE if flow.irrigated else RAINFED_PERCENTAGE
        amount = _percent_of(flow.hasil_panen, percentage)
        return ZakatCalculation(amount, f"{percentage}% × Rp {fmt(flow.hasil_panen)} = Rp {fmt(amount)}")

    if kind == KIND_PETERNAKAN:
        amount = _percent_of(flow.nilai_ternak, DEFAULT_PERCENTAGE)
        return ZakatCalculation(amount, f"{DEFAULT_PERCENTAGE:g}% × Rp {fmt(flow.nilai_ternak)} = Rp {fmt(amount)}")

    if kind == KIND_BISNIS:
        nett = flow.modal_usaha + (flow.keuntungan or 0) + (flow.piutang or 0) - (flow.hutang or 0)
        if nett <= 0:
            return ZakatCalculation(0, "", "Nilai bersih usaha tidak mencukupi untuk zakat bisnis.")
        amount = _percent_of(nett, DEFAULT_PERCENTAGE)
        return ZakatCalculation(amount, f"{DEFAULT_PERCENTAGE:g}% × Rp {fmt(nett)} = Rp {fmt(amount)}")

    amount = _percent_of(flow.total_harta, DEFAULT_PERCENTAGE)
    return ZakatCalculation(amount, f"{DEFAULT_PERCENTAGE:g}% × Rp {fmt(flow.total_harta)} = Rp {fmt(amount)}")


async def _calculate_and_confirm(ctx: FlowContext, flow: ZakatFlow) -> str:
    result = await calculate(ctx, flow)
    if not result.is_due:
        ctx.end()
        message = result.not_due_message or "Nominal zakat Anda Rp 0, sehingga tidak ada zakat yang perlu dibayar."
        return f"{message}\n\n{MSG_NEW_MESSAGE_HINT}"

    flow.calculated_amount = result.amount
    flow.explanation = result.explanation
    advance(flow, ZakatStep.CONFIRM)

    lines = [
        "*Konfirmasi Zakat*",
        "",
        f"Program: {flow.program.name}",
        f"Jenis: {calculator_label(flow.calculator_type)}",
    ]
    if flow.jiwa:
        lines.append(f"Jumlah Jiwa: {flow.jiwa} orang")
    if flow.on_behalf_of:
        lines.append(f"Atas Nama: {flow.on_behalf_of}")
    lines.extend(
        [
            f"Perhitungan: {result.explanation}",
            "",
            f"*Total Zakat: Rp {fmt(result.amount)}*",
            "",
            "Sebelum Anda ketik *Ya*, silakan melafalkan niat zakat. "
            "Semoga Allah menerima zakat Anda dan membersihkan harta Anda. Aamiin 🤲",
            "",
            MSG_CONFIRM_REPROMPT,
        ]
    )
    return "\n".join(lines)


async def _confirm(ctx: FlowContext, flow: ZakatFlow, text: str) -> str:
    confirmation = match_confirmation(text)
    if confirmation == Confirmation.NO:
        ctx.end()
        return MSG_CANCELLED
    if confirmation != Confirmation.YES:
        return MSG_CONFIRM_REPROMPT

    period = ctx.catalog.get_active_zakat_period(flow.program.id)
    if not period:
        ctx.end()
        return "Maaf, tidak ada periode zakat aktif untuk jenis ini saat ini. Silakan hubungi admin."

    quantity = flow.jiwa if calculator_kind(flow.calculator_type) == KIND_FITRAH and flow.jiwa else 1
    amount = flow.calculated_amount
    unit_price = round_half_up(amount / quantity) if quantity > 1 else amount

    record = ctx.create_transaction(
        TransactionRequest(
            product_type=PRODUCT_ZAKAT,
            product_id=period.id,
            quantity=quantity,
            unit_price=unit_price,
            donor_name=ctx.donor_name,
            donor_email=ctx.session.donor_email,
            donor_phone=ctx.session.phone,
            donatur_id=ctx.session.donatur_id,
            include_unique_code=True,
            type_specific_data={
                "calculator_type": flow.calculator_type,
                "zakat_type_id": flow.program.id,
                "on_behalf_of": flow.on_behalf_of or ctx.donor_name,
                "calculation": flow.explanation,
            },
        )
    )
    ctx.end()
    if record is None:
        return MSG_CREATE_FAILED

    details = [f"Jenis Zakat: {period.zakat_type_name}"]
    if quantity > 1:
        details.append(f"Jumlah Jiwa: {quantity} orang × Rp {fmt(unit_price)}")
    if flow.on_behalf_of:
        details.append(f"Atas Nama: {flow.on_behalf_of}")
    return transaction_summary(ctx, "Transaksi zakat berhasil dibuat!", record, details)


_HANDLERS = {
    ZakatStep.SELECT_TYPE: _select_type,
    ZakatStep.SELECT_PROGRAM: _select_program,
    ZakatStep.ASK_DATA: _ask_data,
    ZakatStep.ASK_DATA_HUTANG: _ask_hutang,
    ZakatStep.ASK_DATA_IRIGASI: _ask_irigasi,
    ZakatStep.ASK_DATA_BISNIS_KEUNTUNGAN: _ask_keuntungan,
    ZakatStep.ASK_DATA_BISNIS_PIUTANG: _ask_piutang,
    ZakatStep.ASK_DATA_BISNIS_HUTANG: _ask_bisnis_hutang,
    ZakatStep.ASK_ON_BEHALF: _ask_on_behalf,
    ZakatStep.CONFIRM: _confirm,
}
