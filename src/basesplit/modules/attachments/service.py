from __future__ import annotations

import hashlib
import re
import time
from typing import Protocol

import httpx

from basesplit.core.errors import AllMirrorsUnreachable, EmptyPayload
from basesplit.core.logging import get_logger, log_event, monotonic_ms
from basesplit.modules.attachments.schemas import (
    AttachmentDescriptor,
    InlineAttachment,
    RemoteAttachment,
    ResolvedAttachment,
)

logger = get_logger(__name__)

_IPFS_PATH_RE = re.compile(r"/ipfs/([a-zA-Z0-9]+)")
_BARE_CID_RE = re.compile(r"/([a-zA-Z0-9]{46,})")


class RemoteAttachmentDecoder(Protocol):
    def decode(self, payload: bytes, attachment: RemoteAttachment) -> bytes: ...


class PassthroughDecoder:
    """For remote payloads stored unencrypted; encrypted ones need the transport's decoder."""

    def decode(self, payload: bytes, attachment: RemoteAttachment) -> bytes:
        return payload


def extract_content_id(url: str) -> str | None:
    match = _IPFS_PATH_RE.search(url) or _BARE_CID_RE.search(url)
    return match.group(1) if match else None


def candidate_urls(url: str, gateways: list[str]) -> list[str]:
    cid = extract_content_id(url)
    if not cid:
        return [url]
    out = [url]
    for gateway in gateways:
        base = gateway if gateway.endswith("/") else gateway + "/"
        target = f"{base}{cid}"
        if target not in out:
            out.append(target)
    return out


class AttachmentResolver:
    def __init__(
        self,
        *,
        gateways: list[str],
        timeout_seconds: float = 15.0,
        decoder: RemoteAttachmentDecoder | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._gateways = list(gateways)
        self._timeout = timeout_seconds
        self._decoder = decoder or PassthroughDecoder()
        self._client = client

    def resolve(self, descriptor: AttachmentDescriptor) -> ResolvedAttachment:
        if isinstance(descriptor, InlineAttachment):
            if not descriptor.data:
                raise EmptyPayload()
            return ResolvedAttachment(
                data=descriptor.data,
                filename=descriptor.filename,
                mime_type=descriptor.mime_type,
            )
        return self._resolve_remote(descriptor)

    def _resolve_remote(self, attachment: RemoteAttachment) -> ResolvedAttachment:
        candidates = candidate_urls(attachment.url, self._gateways)
        start = time.monotonic()
        for url in candidates:
            payload = self._try_candidate(url, attachment)
            if payload is None:
                continue
            data = self._decoder.decode(payload, attachment)
            if not data:
                raise EmptyPayload(source_url=url)
            log_event(
                logger,
                "attachment.resolved",
                source_url=url,
                byte_size=len(data),
                candidates_tried=candidates.index(url) + 1,
                duration_ms=monotonic_ms(start),
            )
            return ResolvedAttachment(
                data=data,
                filename=attachment.filename,
                mime_type=attachment.mime_type,
                source_url=url,
            )
        raise AllMirrorsUnreachable(tried=candidates)

    def _try_candidate(self, url: str, attachment: RemoteAttachment) -> bytes | None:
        try:
            probe = self._request("HEAD", url)
            if probe.is_error:
                log_event(logger, "attachment.candidate.failed", url=url, status=probe.status_code)
                return None
            resp = self._request("GET", url)
            if resp.is_error:
                log_event(logger, "attachment.candidate.failed", url=url, status=resp.status_code)
                return None
        except httpx.HTTPError as e:
            log_event(
                logger,
                "attachment.candidate.failed",
                url=url,
                error_type=type(e).__name__,
                error=str(e) or None,
            )
            return None

        payload = resp.content
        if attachment.content_digest:
            digest = hashlib.sha256(payload).hexdigest()
            if digest.lower() != attachment.content_digest.lower():
                log_event(
                    logger,
                    "attachment.candidate.digest_mismatch",
                    url=url,
                    expected=attachment.content_digest,
                    actual=digest,
                )
                return None
        return payload

    def _request(self, method: str, url: str) -> httpx.Response:
        if self._client is not None:
            return self._client.request(
                method, url, timeout=self._timeout, follow_redirects=True
            )
        return httpx.request(method, url, timeout=self._timeout, follow_redirects=True)
