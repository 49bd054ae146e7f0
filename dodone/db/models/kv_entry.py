from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from dodone.db.base import Base, TimestampMixin


class KeyValueEntry(Base, TimestampMixin):
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
