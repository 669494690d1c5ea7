"""Wire format of tunnel messages and their fragment delivery instructions."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterable, Tuple, Union

__all__ = [
    "FrameError",
    "LocalDelivery",
    "TunnelDelivery",
    "RouterDelivery",
    "FirstFragmentDeliveryInstructions",
    "FollowOnFragmentDeliveryInstructions",
    "TunnelMessage",
    "checksum",
    "validate_checksum",
    "encode_first_frag_di",
    "decode_first_frag_di",
    "encode_follow_on_frag_di",
    "decode_follow_on_frag_di",
    "encode_delivery_instructions",
    "decode_delivery_instructions",
    "encode_tunnel_message",
    "decode_tunnel_message",
]

HASH_LEN = 32
IV_LEN = 16
# Bytes following the IV: checksum, padding, zero byte and fragments.
_BODY_LEN = 1008
# Room left for padding and fragments once the checksum and zero byte are placed.
_CONTENT_LEN = _BODY_LEN - 4 - 1

_DELIVERY_TYPE_LOCAL = 0
_DELIVERY_TYPE_TUNNEL = 1
_DELIVERY_TYPE_ROUTER = 2


class FrameError(ValueError):
    """Raised when tunnel data cannot be encoded or decoded."""


@dataclass(frozen=True)
class LocalDelivery:
    """Deliver the message to the local router."""


@dataclass(frozen=True)
class TunnelDelivery:
    """Deliver the message to tunnel ``tid`` at the router with hash ``to``."""

    tid: int
    to: bytes


@dataclass(frozen=True)
class RouterDelivery:
    """Deliver the message to the router with hash ``to``."""

    to: bytes


DeliveryType = Union[LocalDelivery, TunnelDelivery, RouterDelivery]


@dataclass(frozen=True)
class FirstFragmentDeliveryInstructions:
    """Instructions for the first (or only) fragment of a message.

    ``msg_id`` is set only when the message is fragmented.
    """

    delivery_type: DeliveryType
    msg_id: int | None = None


@dataclass(frozen=True)
class FollowOnFragmentDeliveryInstructions:
    """Instructions for a subsequent fragment of a fragmented message."""

    fragment_number: int
    last_fragment: bool
    msg_id: int


DeliveryInstructions = Union[
    FirstFragmentDeliveryInstructions, FollowOnFragmentDeliveryInstructions
]
Fragment = Tuple[DeliveryInstructions, bytes]


@dataclass(frozen=True)
class TunnelMessage:
    """The fragments carried by one tunnel message, each with its instructions."""

    fragments: Tuple[Fragment, ...]

    def __init__(self, fragments: Iterable[Fragment]) -> None:
        object.__setattr__(
            self, "fragments", tuple((di, bytes(frag)) for di, frag in fragments)
        )

    def byte_len(self) -> int:
        """Length in bytes of the encoded fragments."""
        return sum(
            len(encode_delivery_instructions(di)) + 2 + len(frag)
            for di, frag in self.fragments
        )


# Helpers


def _u32(value: int) -> bytes:
    try:
        return int(value).to_bytes(4, "big")
    except OverflowError as exc:
        raise FrameError(f"value does not fit in 32 bits: {value}") from exc


def _take(data: bytes, length: int) -> Tuple[bytes, bytes]:
    if len(data) < length:
        raise FrameError(f"need {length} bytes, have {len(data)}")
    return data[:length], data[length:]


def _take_u32(data: bytes) -> Tuple[int, bytes]:
    raw, rest = _take(data, 4)
    return int.from_bytes(raw, "big"), rest


def _hash_bytes(value: bytes) -> bytes:
    value = bytes(value)
    if len(value) != HASH_LEN:
        raise FrameError(f"hash must be {HASH_LEN} bytes, got {len(value)}")
    return value


# Checksum


def checksum(buf: bytes, iv: bytes) -> int:
    """First four bytes of SHA-256 over ``buf`` then ``iv``, as a big-endian int."""
    digest = hashlib.sha256(bytes(buf) + bytes(iv)).digest()
    return int.from_bytes(digest[:4], "big")


def validate_checksum(expected: int, buf: bytes, iv: bytes) -> None:
    """Raise FrameError unless ``expected`` is the checksum of ``buf`` and ``iv``."""
    if checksum(buf, iv) != expected:
        raise FrameError("checksum mismatch")


# FirstFragmentDeliveryInstructions


def encode_first_frag_di(di: FirstFragmentDeliveryInstructions) -> bytes:
    """Encode first-fragment delivery instructions."""
    dt = di.delivery_type
    if isinstance(dt, LocalDelivery):
        code, body = _DELIVERY_TYPE_LOCAL, b""
    elif isinstance(dt, TunnelDelivery):
        code, body = _DELIVERY_TYPE_TUNNEL, _u32(dt.tid) + _hash_bytes(dt.to)
    elif isinstance(dt, RouterDelivery):
        code, body = _DELIVERY_TYPE_ROUTER, _hash_bytes(dt.to)
    else:
        raise FrameError(f"unknown delivery type: {dt!r}")

    flags = (code << 5) & 0b0110_0000
    if di.msg_id is not None:
        flags |= 0b1000
    out = bytes([flags]) + body
    if di.msg_id is not None:
        out += _u32(di.msg_id)
    return out


def decode_first_frag_di(
    data: bytes,
) -> Tuple[FirstFragmentDeliveryInstructions, bytes]:
    """Decode first-fragment delivery instructions; return them and the rest."""
    data = bytes(data)
    flags_raw, rest = _take(data, 1)
    flags = flags_raw[0]
    code = (flags >> 5) & 0b11
    fragmented = bool(flags & 0b1000)

    delivery_type: DeliveryType
    if code == _DELIVERY_TYPE_LOCAL:
        delivery_type = LocalDelivery()
    elif code == _DELIVERY_TYPE_TUNNEL:
        tid, rest = _take_u32(rest)
        to, rest = _take(rest, HASH_LEN)
        delivery_type = TunnelDelivery(tid, to)
    elif code == _DELIVERY_TYPE_ROUTER:
        to, rest = _take(rest, HASH_LEN)
        delivery_type = RouterDelivery(to)
    else:
        raise FrameError(f"invalid delivery type: {code}")

    msg_id = None
    if fragmented:
        msg_id, rest = _take_u32(rest)
    return FirstFragmentDeliveryInstructions(delivery_type, msg_id), rest


# FollowOnFragmentDeliveryInstructions


def encode_follow_on_frag_di(di: FollowOnFragmentDeliveryInstructions) -> bytes:
    """Encode follow-on fragment delivery instructions."""
    flags = 0b1000_0000
    flags |= (di.fragment_number << 1) & 0b0111_1110
    if di.last_fragment:
        flags |= 0b1
    return bytes([flags]) + _u32(di.msg_id)


def decode_follow_on_frag_di(
    data: bytes,
) -> Tuple[FollowOnFragmentDeliveryInstructions, bytes]:
    """Decode follow-on fragment delivery instructions; return them and the rest."""
    data = bytes(data)
    flags_raw, rest = _take(data, 1)
    flags = flags_raw[0]
    msg_id, rest = _take_u32(rest)
    di = FollowOnFragmentDeliveryInstructions(
        fragment_number=(flags >> 1) & 0b11_1111,
        last_fragment=bool(flags & 0b1),
        msg_id=msg_id,
    )
    return di, rest


# Delivery instructions of either kind


def encode_delivery_instructions(di: DeliveryInstructions) -> bytes:
    """Encode delivery instructions of either kind."""
    if isinstance(di, FirstFragmentDeliveryInstructions):
        return encode_first_frag_di(di)
    if isinstance(di, FollowOnFragmentDeliveryInstructions):
        return encode_follow_on_frag_di(di)
    raise FrameError(f"unknown delivery instructions: {di!r}")


def decode_delivery_instructions(data: bytes) -> Tuple[DeliveryInstructions, bytes]:
    """Decode delivery instructions of either kind; return them and the rest."""
    data = bytes(data)
    if not data:
        raise FrameError("no delivery instructions")
    if data[0] & 0x80 == 0:
        return decode_first_frag_di(data)
    return decode_follow_on_frag_di(data)


# TunnelMessage


def _decode_fragment(data: bytes) -> Tuple[Fragment, bytes]:
    di, rest = decode_delivery_instructions(data)
    size_raw, rest = _take(rest, 2)
    frag, rest = _take(rest, int.from_bytes(size_raw, "big"))
    return (di, frag), rest


def encode_tunnel_message(iv: bytes, message: TunnelMessage) -> bytes:
    """Encode ``message`` behind ``iv`` with checksum, non-zero padding and zero byte."""
    iv = bytes(iv)
    body = b"".join(
        encode_delivery_instructions(di) + len(frag).to_bytes(2, "big") + frag
        for di, frag in message.fragments
    )
    padding_len = _CONTENT_LEN - len(body)
    if padding_len < 0:
        raise FrameError(
            f"tunnel message too long: {len(body)} bytes, at most {_CONTENT_LEN}"
        )
    return (
        iv
        + _u32(checksum(body, iv))
        + b"\x01" * padding_len
        + b"\x00"
        + body
    )


def decode_tunnel_message(data: bytes) -> TunnelMessage:
    """Decode a tunnel message, verifying its checksum.

    Fragments are read until the remaining bytes no longer hold a whole one.
    """
    data = bytes(data)
    iv, rest = _take(data, IV_LEN)
    expected, rest = _take_u32(rest)
    zero = rest.find(0)
    if zero < 0:
        raise FrameError("no zero byte after padding")
    padding_len = zero
    rest = rest[zero + 1:]

    msg_len = _CONTENT_LEN - padding_len
    if msg_len < 0:
        raise FrameError(f"padding too long: {padding_len} bytes")
    msg_bytes, _ = _take(rest, msg_len)
    validate_checksum(expected, msg_bytes, iv)

    fragments = []
    while rest:
        try:
            fragment, rest = _decode_fragment(rest)
        except FrameError:
            break
        fragments.append(fragment)
    return TunnelMessage(fragments)