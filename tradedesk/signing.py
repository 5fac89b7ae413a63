"""Request signing primitives.

A signed request is built in one pass:

    payload  = {access_token, nonce, **fields}
    body     = canonical JSON of payload
    encoded  = base64(body)
    signature = hex(HMAC-SHA512(secret_key, encoded))

``body`` is both what gets signed (through ``encoded``) and what gets
transmitted. Nothing downstream serializes the payload a second time.
"""
import base64
import hashlib
import hmac
import json
import threading
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .credentials import Credentials

RESERVED_FIELDS = ("access_token", "nonce")

Nonce = Union[str, int]


class NonceStyle(Enum):
    RANDOM = "random"  # UUID-v4 string, v2.1 endpoints
    INCREMENTING = "incrementing"  # epoch milliseconds, legacy v2 endpoints


class NonceGenerator:
    """Produces nonces for both endpoint generations.

    Incrementing nonces are strictly increasing for the lifetime of the
    generator even when the clock stalls or two calls land in the same
    millisecond. Share one generator between clients that talk to the
    same account.
    """

    def __init__(self, clock_ms: Optional[Callable[[], int]] = None):
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))
        self._lock = threading.Lock()
        self._last_ms = 0

    def next(self, style: NonceStyle) -> Nonce:
        if style is NonceStyle.RANDOM:
            return str(uuid.uuid4())
        with self._lock:
            self._last_ms = max(self._clock_ms(), self._last_ms + 1)
            return self._last_ms


def build_payload(access_token: str, nonce: Nonce, fields: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    fields = dict(fields or {})
    clash = [k for k in RESERVED_FIELDS if k in fields]
    if clash:
        raise ValueError(f"reserved payload field(s): {', '.join(clash)}")
    payload: Dict[str, Any] = {"access_token": access_token, "nonce": nonce}
    payload.update(fields)
    return payload


def serialize_payload(payload: Mapping[str, Any]) -> str:
    """Compact JSON, keys in insertion order, non-ASCII kept as-is."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def encode_payload(body: str) -> str:
    return base64.b64encode(body.encode("utf-8")).decode("ascii")


def sign_payload(secret_key: str, encoded_payload: str) -> str:
    return hmac.new(secret_key.encode("utf-8"), encoded_payload.encode("utf-8"), hashlib.sha512).hexdigest()


@dataclass(frozen=True)
class SignedRequest:
    """Everything needed to send one authenticated POST."""
    url: str
    payload: Dict[str, Any]
    body: str
    encoded_payload: str
    signature: str
    headers: Dict[str, str]

    @property
    def body_bytes(self) -> bytes:
        return self.body.encode("utf-8")


def sign_request(
    credentials: Credentials,
    url: str,
    nonce: Nonce,
    fields: Optional[Mapping[str, Any]] = None,
    *,
    payload_header: str = "X-SIGNED-PAYLOAD",
    signature_header: str = "X-SIGNATURE",
    extra_headers: Optional[Mapping[str, str]] = None,
) -> SignedRequest:
    payload = build_payload(credentials.access_token, nonce, fields)
    body = serialize_payload(payload)
    encoded = encode_payload(body)
    signature = sign_payload(credentials.secret_key, encoded)
    headers = dict(extra_headers or {})
    headers.update({
        "Content-Type": "application/json",
        payload_header: encoded,
        signature_header: signature,
        "Content-Length": str(len(body.encode("utf-8"))),
    })
    return SignedRequest(
        url=url,
        payload=payload,
        body=body,
        encoded_payload=encoded,
        signature=signature,
        headers=headers,
    )
