from sqlalchemy import Column, String, Text

from bantuanku_bot.database import Base


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False, default="")
    category = Column(String(32), default="general")  # general, zakat, qurban, payment, whatsapp
