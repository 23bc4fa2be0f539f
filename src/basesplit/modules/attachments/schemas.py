from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any

from basesplit.core.errors import EmptyPayload, MalformedAttachment

INLINE_KINDS = frozenset({"attachment"})
REMOTE_KINDS = frozenset({"remoteAttachment", "remoteStaticAttachment"})


@dataclass(frozen=True)
class InlineAttachment:
    data: bytes
    filename: str | None = None
    mime_type: str | None = None


@dataclass(frozen=True)
class RemoteAttachment:
    url: str
    content_digest: str | None = None
    secret: bytes | None = None
    salt: bytes | None = None
    nonce: bytes | None = None
    scheme: str | None = None
    content_length: int | None = None
    filename: str | None = None
    mime_type: str | None = None


@dataclass(frozen=True)
class ResolvedAttachment:
    data: bytes
    filename: str | None
    mime_type: str | None
    source_url: str | None = None


AttachmentDescriptor = InlineAttachment | RemoteAttachment


def attachment_from_payload(content_kind: str, payload: Any) -> AttachmentDescriptor:
    """Build a descriptor from a transport payload (already-built descriptor or raw dict)."""
    if isinstance(payload, (InlineAttachment, RemoteAttachment)):
        return payload
    if not isinstance(payload, dict):
        raise MalformedAttachment(content_kind=content_kind)

    if content_kind in INLINE_KINDS:
        data = _as_bytes(payload.get("data"))
        if data is None:
            raise EmptyPayload(content_kind=content_kind)
        return InlineAttachment(
            data=data,
            filename=payload.get("filename"),
            mime_type=payload.get("mimeType") or payload.get("mime_type"),
        )

    if content_kind in REMOTE_KINDS:
        url = payload.get("url")
        if not isinstance(url, str) or not url.strip():
            raise MalformedAttachment("Remote attachment has no URL", content_kind=content_kind)
        length = _as_length(payload.get("contentLength") or payload.get("content_length"))
        return RemoteAttachment(
            url=url.strip(),
            content_digest=payload.get("contentDigest") or payload.get("content_digest"),
            secret=_as_bytes(payload.get("secret")),
            salt=_as_bytes(payload.get("salt")),
            nonce=_as_bytes(payload.get("nonce")),
            scheme=payload.get("scheme"),
            content_length=length,
            filename=payload.get("filename"),
            mime_type=payload.get("mimeType") or payload.get("mime_type"),
        )

    raise MalformedAttachment(content_kind=content_kind)


def _as_bytes(raw: Any) -> bytes | None:
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw)
    if isinstance(raw, list):
        try:
            return bytes(raw)
        except (TypeError, ValueError) as e:
            raise MalformedAttachment("Attachment bytes are out of range") from e
    if isinstance(raw, str):
        try:
            return base64.b64decode(raw, validate=True)
        except ValueError as e:
            raise MalformedAttachment("Attachment bytes are not base64") from e
    raise MalformedAttachment("Unsupported attachment byte encoding")


def _as_length(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        length = int(raw)
    except (TypeError, ValueError) as e:
        raise MalformedAttachment("Attachment content length is not a number") from e
    if length < 0:
        raise MalformedAttachment("Attachment content length is negative")
    return length
