"""Processing of incoming tunnel build requests addressed to us."""

from __future__ import annotations

import inspect
import logging
import time
from typing import Any, Callable, Sequence

from .buildrequest import (
    BUILD_RECORD_LEN,
    MAX_LOOKUP_TIME,
    TUNNEL_ACCEPT,
    BuildRequestDropped,
    BuildRequestRecord,
    ParticipantType,
    check_build_request,
    encrypt_entries,
    reply_for,
)
from .encryption import LayerCipher
from .processor import (
    TUNNEL_LIFETIME,
    HopConfig,
    InboundGateway,
    Intermediate,
    NextHop,
    OutboundEndpoint,
)
from .util import DecayingBloomFilter

__all__ = [
    "HopAcceptor",
    "TUNNEL_BUILD",
    "TUNNEL_BUILD_REPLY",
    "VARIABLE_TUNNEL_BUILD",
    "VARIABLE_TUNNEL_BUILD_REPLY",
    "FIXED_BUILD_RECORDS",
]

log = logging.getLogger(__name__)

# Kinds of message a processed build request is forwarded as.
TUNNEL_BUILD = "TunnelBuild"
TUNNEL_BUILD_REPLY = "TunnelBuildReply"
VARIABLE_TUNNEL_BUILD = "VariableTunnelBuild"
VARIABLE_TUNNEL_BUILD_REPLY = "VariableTunnelBuildReply"

# Number of records in a fixed-size tunnel build message.
FIXED_BUILD_RECORDS = 8


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class HopAcceptor:
    """Processes single tunnel build requests.

    The collaborators may be plain callables or coroutine functions:

    - ``decrypt(entry)`` returns the BuildRequestRecord in a 528-byte entry,
      raising if it cannot be decrypted;
    - ``lookup(next_ident, timeout)`` returns the next hop's router info,
      ``timeout`` being in seconds;
    - ``register(receive_tid, config)`` records a tunnel we now participate in;
    - ``send(router, kind, msg_id, entries)`` forwards the processed message;
    - ``encode_response(reply)`` returns the encoded build response record.

    Intermediate positions are accepted; every other position is rejected.
    """

    def __init__(
        self,
        our_hash: bytes,
        decrypt: Callable[[bytes], Any],
        lookup: Callable[[bytes, int], Any],
        register: Callable[[int, HopConfig], Any],
        send: Callable[[Any, str, int, list], Any],
        encode_response: Callable[[int], bytes],
        bloom_filter: DecayingBloomFilter | None = None,
    ) -> None:
        self.our_hash = bytes(our_hash)
        self.decrypt = decrypt
        self.lookup = lookup
        self.register = register
        self.send = send
        self.encode_response = encode_response
        self.bloom_filter = bloom_filter if bloom_filter is not None else DecayingBloomFilter(20_000)

    def _decrypt(self, entry: bytes) -> BuildRequestRecord | None:
        try:
            record = self.decrypt(entry)
        except Exception:
            log.debug("Couldn't decrypt build request, dropping")
            return None
        # Duplicates are detected on the reply key.
        if self.bloom_filter.feed(record.reply_key):
            log.debug("Duplicate build request, dropping")
            return None
        return record

    @staticmethod
    def _hop_data(record: BuildRequestRecord, from_ident: bytes, next_hop: Any):
        if record.hop_type is ParticipantType.INBOUND_GATEWAY:
            return InboundGateway(NextHop(next_hop, record.next_tid))
        if record.hop_type is ParticipantType.INTERMEDIATE:
            return Intermediate(from_ident, NextHop(next_hop, record.next_tid))
        return OutboundEndpoint(from_ident)

    def _write_response(self, entry: bytes, reply: int) -> bytes:
        response = bytes(self.encode_response(reply))
        if len(response) > len(entry):
            raise ValueError(
                f"build response is {len(response)} bytes, record holds {len(entry)}"
            )
        return response + entry[len(response):]

    async def accept(
        self,
        from_ident: bytes,
        entries: Sequence[bytes],
        index: int,
        is_variable: bool,
    ) -> int | None:
        """Process the record at ``index`` and forward the build message.

        Returns the reply code sent onward, or None if the request was dropped.
        Lookup and send failures are raised.
        """
        entries = [bytes(entry) for entry in entries]
        if not is_variable and len(entries) != FIXED_BUILD_RECORDS:
            raise ValueError(
                f"a fixed tunnel build holds {FIXED_BUILD_RECORDS} records, got {len(entries)}"
            )
        for entry in entries:
            if len(entry) != BUILD_RECORD_LEN:
                raise ValueError(
                    f"build record must be {BUILD_RECORD_LEN} bytes, got {len(entry)}"
                )
        from_ident = bytes(from_ident)

        record = self._decrypt(entries[index])
        if record is None:
            return None

        try:
            check_build_request(record, from_ident, self.our_hash)
        except BuildRequestDropped as exc:
            log.warning("Dropping build request, %s: %r", exc.reason, record)
            return None

        next_hop = await _resolve(self.lookup(record.next_ident, MAX_LOOKUP_TIME))

        reply = reply_for(record)
        if reply == TUNNEL_ACCEPT:
            config = HopConfig(
                hop_data=self._hop_data(record, from_ident, next_hop),
                layer_cipher=LayerCipher(record.iv_key, record.layer_key),
                expires=time.time() + TUNNEL_LIFETIME,
            )
            await _resolve(self.register(record.receive_tid, config))

        entries[index] = self._write_response(entries[index], reply)
        encrypted = encrypt_entries(entries, record.reply_key, record.reply_iv)

        # As the OBEP we turn the request into a reply; otherwise it goes on as-is.
        if record.hop_type is ParticipantType.OUTBOUND_ENDPOINT:
            kind = VARIABLE_TUNNEL_BUILD_REPLY if is_variable else TUNNEL_BUILD_REPLY
        else:
            kind = VARIABLE_TUNNEL_BUILD if is_variable else TUNNEL_BUILD

        await _resolve(self.send(next_hop, kind, record.send_msg_id, encrypted))
        return reply