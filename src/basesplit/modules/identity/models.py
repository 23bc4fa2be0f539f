from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from basesplit.core.models import Base


class User(Base):
    __tablename__ = "users"

    wallet_address: Mapped[str] = mapped_column(String(64), primary_key=True)
    ens_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
