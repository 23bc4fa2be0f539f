"""
Error taxonomy shared by the ingestion pipeline, the ledger and the claim API.

Every error carries a stable machine-readable ``code``, a user-facing ``message``
and the HTTP status the API layer maps it to.
"""

from __future__ import annotations

from typing import Any


class BaseSplitError(Exception):
    code: str = "ERROR"
    status_code: int = 500
    default_message: str = "Unexpected error"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": self.message, "code": self.code, **self.details}


class TransportError(BaseSplitError):
    code = "TRANSPORT_ERROR"
    status_code = 502
    default_message = "Attachment could not be retrieved"


class AllMirrorsUnreachable(TransportError):
    code = "ALL_MIRRORS_UNREACHABLE"
    default_message = "All attachment locations failed"


class EmptyPayload(TransportError):
    code = "EMPTY_PAYLOAD"
    default_message = "Attachment is empty"


class MalformedAttachment(TransportError):
    code = "MALFORMED_ATTACHMENT"
    default_message = "Attachment descriptor is malformed"


class InterpretationError(BaseSplitError):
    code = "INTERPRETATION_ERROR"
    status_code = 422
    default_message = "Receipt could not be interpreted"


class ImageUnreadable(InterpretationError):
    code = "IMAGE_UNREADABLE"
    default_message = "The receipt image is too blurry or unclear to read"


class NotAReceipt(InterpretationError):
    code = "NOT_A_RECEIPT"
    default_message = "The provided image is not a receipt"


class EmptyExtraction(InterpretationError):
    code = "EMPTY_EXTRACTION"
    default_message = "No line items were found on the receipt"


class BackendUnavailable(InterpretationError):
    code = "BACKEND_UNAVAILABLE"
    status_code = 503
    default_message = "Vision backend unavailable"


class IdentityError(BaseSplitError):
    code = "IDENTITY_ERROR"
    status_code = 404
    default_message = "Unable to determine wallet address"

    def __init__(self, message: str | None = None, *, reason: str = "not_found", **details: Any):
        super().__init__(message, reason=reason, **details)
        self.reason = reason


class LedgerError(BaseSplitError):
    code = "LEDGER_ERROR"
    status_code = 500
    default_message = "Ledger error"


class DuplicateId(LedgerError):
    code = "DUPLICATE_ID"
    status_code = 409
    default_message = "Record already exists"


class UnknownBill(LedgerError):
    code = "UNKNOWN_BILL"
    status_code = 404
    default_message = "Bill not found"


class NotFound(LedgerError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class ClaimError(BaseSplitError):
    code = "CLAIM_ERROR"
    status_code = 400
    default_message = "Claim failed"


class InvalidRequest(ClaimError):
    code = "INVALID_REQUEST"
    status_code = 400
    default_message = "Invalid claim request"


class AlreadyClaimed(ClaimError):
    code = "ALREADY_CLAIMED"
    status_code = 409
    default_message = "One or more items are already claimed"
