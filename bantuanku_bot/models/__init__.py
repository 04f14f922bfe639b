from bantuanku_bot.models.campaign import Campaign
from bantuanku_bot.models.donatur import Donatur
from bantuanku_bot.models.qurban import (
    QurbanPackage,
    QurbanPackagePeriod,
    QurbanPeriod,
    QurbanSavings,
    QurbanSharedGroup,
)
from bantuanku_bot.models.setting import Setting
from bantuanku_bot.models.transaction import Transaction, TransactionPayment
from bantuanku_bot.models.zakat import ZakatPeriod, ZakatType

__all__ = [
    "Campaign",
    "Donatur",
    "ZakatType",
    "ZakatPeriod",
    "QurbanPeriod",
    "QurbanPackage",
    "QurbanPackagePeriod",
    "QurbanSharedGroup",
    "QurbanSavings",
    "Transaction",
    "TransactionPayment",
    "Setting",
]
