"""Chat replies sent back to the conversation an event came from."""

from __future__ import annotations

from decimal import Decimal

from basesplit.core.errors import BaseSplitError, IdentityError

ACK = "Processing your receipt... 🧾"
TEXT_STEERING = "Cool! Please only share receipts tho!"

GENERIC_FAILURE = "❌ Failed to process receipt. Please try again with a clearer image."

_FAILURES_BY_CODE = {
    "ALL_MIRRORS_UNREACHABLE": "❌ Could not download your receipt. Please send it again.",
    "EMPTY_PAYLOAD": "❌ That attachment was empty. Please send the receipt again.",
    "MALFORMED_ATTACHMENT": "❌ Could not read that attachment. Please send the receipt again.",
    "IMAGE_UNREADABLE": GENERIC_FAILURE,
    "NOT_A_RECEIPT": "❌ That doesn't look like a receipt. Please send a photo of a receipt.",
    "EMPTY_EXTRACTION": "❌ No items found on that receipt. Please try again with a clearer image.",
    "BACKEND_UNAVAILABLE": "❌ Receipt reading is unavailable right now. Please try again later.",
}

_IDENTITY_FAILURES = {
    "address_not_found": "❌ Could not process receipt. Unable to determine wallet address.",
    "no_ethereum_address": (
        "❌ Could not process receipt. No Ethereum address associated with your account."
    ),
    "lookup_failed": "❌ Could not process receipt. Error retrieving wallet address.",
}


def bill_link(miniapp_url: str, bill_id: object) -> str:
    return f"{miniapp_url.rstrip('/')}/split/{bill_id}"


def format_money(amount: Decimal, currency: str = "USD") -> str:
    if currency == "USD":
        return f"${amount:.2f}"
    return f"{amount:.2f} {currency}"


def success(*, total: Decimal, currency: str, item_count: int, link: str) -> str:
    return (
        "Receipt processed! 🧾\n\n"
        f"Total: {format_money(total, currency)}\n"
        f"Items: {item_count}\n\n"
        "Split the bill here:\n"
        f"{link}"
    )


def failure(error: BaseSplitError | None) -> str:
    if isinstance(error, IdentityError):
        return _IDENTITY_FAILURES.get(error.reason, _IDENTITY_FAILURES["address_not_found"])
    if error is None:
        return GENERIC_FAILURE
    return _FAILURES_BY_CODE.get(error.code, GENERIC_FAILURE)
