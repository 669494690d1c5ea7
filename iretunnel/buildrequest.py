"""Validation and reply handling for incoming tunnel build request records."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

__all__ = [
    "ParticipantType",
    "BuildRequestRecord",
    "BuildRequestDropped",
    "find_our_entry",
    "check_build_request",
    "reply_for",
    "encrypt_entries",
    "BUILD_RECORD_LEN",
    "MAX_REQUEST_AGE",
    "MAX_REQUEST_FUTURE",
    "MAX_LOOKUP_TIME",
    "TUNNEL_ACCEPT",
    "TUNNEL_REJECT_PROBABALISTIC_REJECT",
    "TUNNEL_REJECT_TRANSIENT_OVERLOAD",
    "TUNNEL_REJECT_BANDWIDTH",
    "TUNNEL_REJECT_CRIT",
]

# Length of one encrypted record in a tunnel build message.
BUILD_RECORD_LEN = 528
# Build requests may be at most 65 minutes older than the current time.
MAX_REQUEST_AGE = 65 * 60
# Build requests may be at most 5 minutes newer than the current time.
MAX_REQUEST_FUTURE = 5 * 60
# Seconds we will spend looking up the next peer of a tunnel.
MAX_LOOKUP_TIME = 30

TUNNEL_ACCEPT = 0
TUNNEL_REJECT_PROBABALISTIC_REJECT = 10
TUNNEL_REJECT_TRANSIENT_OVERLOAD = 20
TUNNEL_REJECT_BANDWIDTH = 30
TUNNEL_REJECT_CRIT = 50

_PREFIX_LEN = 16
_KEY_LEN = 32
_IV_LEN = 16


class ParticipantType(Enum):
    """The position we are asked to take in a tunnel."""

    INBOUND_GATEWAY = "inbound_gateway"
    INTERMEDIATE = "intermediate"
    OUTBOUND_ENDPOINT = "outbound_endpoint"


@dataclass(frozen=True)
class BuildRequestRecord:
    """A decrypted build request record.

    ``request_time`` is in hours since the Unix epoch.
    """

    receive_tid: int
    our_ident: bytes
    next_tid: int
    next_ident: bytes
    hop_type: ParticipantType
    request_time: int
    send_msg_id: int
    layer_key: bytes = field(default=bytes(_KEY_LEN), repr=False)
    iv_key: bytes = field(default=bytes(_KEY_LEN), repr=False)
    reply_key: bytes = field(default=bytes(_KEY_LEN), repr=False)
    reply_iv: bytes = field(default=bytes(_IV_LEN), repr=False)


class BuildRequestDropped(Exception):
    """Raised when a build request must be dropped without any reply."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def find_our_entry(entries: Iterable[bytes], our_hash: bytes) -> int | None:
    """Return the index of the record addressed to us, or None.

    A record is ours when its first 16 bytes match the start of our hash.
    """
    prefix = bytes(our_hash[:_PREFIX_LEN])
    for index, entry in enumerate(entries):
        if bytes(entry[:_PREFIX_LEN]) == prefix:
            return index
    return None


def check_build_request(
    record: BuildRequestRecord,
    from_ident: bytes,
    our_hash: bytes,
    now: float | None = None,
) -> None:
    """Raise BuildRequestDropped if the request fails loop or timestamp checks.

    ``now`` is a Unix time in seconds and defaults to the current time.
    """
    # (A-A): we must not be our own next hop. An OBEP has no next hop.
    if record.hop_type is not ParticipantType.OUTBOUND_ENDPOINT and record.next_ident == our_hash:
        raise BuildRequestDropped("we are the next hop")

    # (A-B-A): previous and next hops must differ for intermediate hops.
    if record.hop_type is ParticipantType.INTERMEDIATE and from_ident == record.next_ident:
        raise BuildRequestDropped("same previous and next hop")

    if now is None:
        now = time.time()
    request_secs = record.request_time * 3600
    if request_secs < now:
        age = int(now - request_secs)
        if age > MAX_REQUEST_AGE:
            raise BuildRequestDropped(f"request too old; replay attack? ({age})")
    else:
        ahead = int(request_secs - now)
        if ahead > MAX_REQUEST_FUTURE:
            raise BuildRequestDropped(f"request too far in future ({ahead})")


def reply_for(record: BuildRequestRecord) -> int:
    """Decide our reply: accept intermediate hops, reject every other position."""
    if record.hop_type is ParticipantType.INTERMEDIATE:
        return TUNNEL_ACCEPT
    return TUNNEL_REJECT_CRIT


def encrypt_entries(
    entries: Sequence[bytes], reply_key: bytes, reply_iv: bytes
) -> list[bytes]:
    """Encrypt every record with AES-256-CBC under the reply key and IV."""
    reply_key = bytes(reply_key)
    reply_iv = bytes(reply_iv)
    if len(reply_key) != _KEY_LEN:
        raise ValueError(f"reply_key must be {_KEY_LEN} bytes, got {len(reply_key)}")
    if len(reply_iv) != _IV_LEN:
        raise ValueError(f"reply_iv must be {_IV_LEN} bytes, got {len(reply_iv)}")

    result = []
    for entry in entries:
        entry = bytes(entry)
        if len(entry) != BUILD_RECORD_LEN:
            raise ValueError(
                f"build record must be {BUILD_RECORD_LEN} bytes, got {len(entry)}"
            )
        enc = Cipher(algorithms.AES(reply_key), modes.CBC(reply_iv)).encryptor()
        result.append(enc.update(entry) + enc.finalize())
    return result