from __future__ import annotations

import os
from decimal import Decimal

import pytest

# Set env before any basesplit imports (settings are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.basesplit_test.db")
os.environ.setdefault("VISION_BACKEND", "stub")
os.environ.setdefault("INGESTION_SEND_ACK", "true")


class FakeTransport:
    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = fail

    def send(self, conversation_id: str, text: str) -> None:
        if self.fail:
            raise RuntimeError("transport down")
        self.sent.append((conversation_id, text))

    def texts(self) -> list[str]:
        return [text for _, text in self.sent]


@pytest.fixture
def engine(tmp_path):
    import basesplit.models  # noqa: F401
    from basesplit.core.db import create_db_engine
    from basesplit.core.models import Base

    eng = create_db_engine(f"sqlite:///{tmp_path / 'basesplit.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def ledger(engine):
    from basesplit.core.db import make_session_factory
    from basesplit.modules.bills.service import BillLedger

    return BillLedger(make_session_factory(engine))


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_bill(ledger):
    from basesplit.modules.bills.service import LineItemDraft

    def _make(*prices: str, payer: str = "0xpayer", total: str | None = None):
        drafts = [LineItemDraft(f"Item {i + 1}", Decimal(p)) for i, p in enumerate(prices)]
        return ledger.create_bill_with_items(
            conversation_id="conv-1",
            payer_address=payer,
            total_amount=Decimal(total) if total else sum((d.price for d in drafts), Decimal("0")),
            items=drafts,
        )

    return _make


@pytest.fixture
def failing_transport() -> FakeTransport:
    return FakeTransport(fail=True)
