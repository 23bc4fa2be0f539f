from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from basesplit.core.errors import IdentityError
from basesplit.core.logging import get_logger, log_event, log_exception
from basesplit.modules.identity.models import User

logger = get_logger(__name__)

ETHEREUM_IDENTIFIER_KIND = 0


class AddressResolver(Protocol):
    def resolve_address(self, sender_id: str) -> str: ...


class StaticAddressResolver:
    def __init__(self, addresses: Mapping[str, str]) -> None:
        self._addresses = {k: v.lower() for k, v in addresses.items()}

    def resolve_address(self, sender_id: str) -> str:
        address = self._addresses.get(sender_id)
        if not address:
            raise IdentityError(reason="address_not_found", sender_id=sender_id)
        return address


class InboxIdentityResolver:
    """
    Resolve a chat sender to a payment address from its inbox state.

    ``lookup`` returns the sender's identifiers as dicts carrying ``identifier`` and
    ``identifierKind``; the first Ethereum identifier wins.
    """

    def __init__(self, lookup: Callable[[str], Iterable[Mapping[str, Any]] | None]) -> None:
        self._lookup = lookup

    def resolve_address(self, sender_id: str) -> str:
        try:
            identifiers = list(self._lookup(sender_id) or [])
        except Exception as e:  # noqa: BLE001
            log_exception(logger, "identity.lookup.error", sender_id=sender_id)
            raise IdentityError(
                "Error retrieving wallet address", reason="lookup_failed", sender_id=sender_id
            ) from e

        if not identifiers:
            raise IdentityError(
                "Unable to determine wallet address",
                reason="address_not_found",
                sender_id=sender_id,
            )

        for ident in identifiers:
            if ident.get("identifierKind") == ETHEREUM_IDENTIFIER_KIND and ident.get("identifier"):
                address = str(ident["identifier"]).strip().lower()
                log_event(logger, "identity.resolved", sender_id=sender_id, address=address)
                return address

        raise IdentityError(
            "No Ethereum address associated with your account",
            reason="no_ethereum_address",
            sender_id=sender_id,
        )


def upsert_user(
    session: Session,
    *,
    wallet_address: str,
    display_name: str | None = None,
    ens_name: str | None = None,
) -> User:
    address = wallet_address.strip().lower()
    user = session.get(User, address)
    if not user:
        user = User(wallet_address=address, display_name=display_name, ens_name=ens_name)
    else:
        if display_name is not None:
            user.display_name = display_name
        if ens_name is not None:
            user.ens_name = ens_name
    session.add(user)
    session.flush()
    return user


def get_display_names(session: Session, *, addresses: Iterable[str]) -> dict[str, str]:
    wanted = {a.lower() for a in addresses if a}
    if not wanted:
        return {}
    out: dict[str, str] = {}
    for user in session.scalars(select(User).where(User.wallet_address.in_(wanted))):
        name = user.display_name or user.ens_name
        if name:
            out[user.wallet_address] = name
    return out
