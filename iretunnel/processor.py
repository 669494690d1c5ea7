"""Fast-path processing of tunnel data in participating tunnels."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Union

from .encryption import LayerCipher
from .util import DecayingBloomFilter

__all__ = [
    "TunnelData",
    "NextHop",
    "InboundGateway",
    "Intermediate",
    "OutboundEndpoint",
    "HopConfig",
    "process_hop",
    "Participant",
    "TUNNEL_LIFETIME",
    "EXPIRE_TUNNELS_INTERVAL",
]

log = logging.getLogger(__name__)

# Seconds a participating tunnel lives for, and the filter decay period.
TUNNEL_LIFETIME = 600
# Interval, in seconds, on which expired tunnels are dropped.
EXPIRE_TUNNELS_INTERVAL = 10


@dataclass(frozen=True)
class TunnelData:
    """A tunnel data message: the tunnel ID and 1024 bytes of payload."""

    tid: int
    data: bytes


@dataclass(frozen=True)
class NextHop:
    """The router to forward to and the tunnel ID it expects."""

    router: Any
    tid: int


@dataclass(frozen=True)
class InboundGateway:
    next_hop: NextHop


@dataclass(frozen=True)
class Intermediate:
    from_ident: bytes
    next_hop: NextHop


@dataclass(frozen=True)
class OutboundEndpoint:
    from_ident: bytes


HopData = Union[InboundGateway, Intermediate, OutboundEndpoint]


@dataclass
class HopConfig:
    """What we hold for a tunnel we participate in; ``expires`` is a Unix time."""

    hop_data: HopData
    layer_cipher: LayerCipher
    expires: float


def process_hop(
    next_hop: NextHop,
    td: TunnelData,
    layer_cipher: LayerCipher,
    send: Callable[[Any, TunnelData], Any],
) -> TunnelData:
    """Apply this hop's layer to ``td`` and send it on; return what was sent."""
    out = replace(td, tid=next_hop.tid, data=layer_cipher.encrypt_layer(td.data))
    send(next_hop.router, out)
    return out


class Participant:
    """Handles tunnel data for the tunnels we participate in.

    Only intermediate hops are supported.
    """

    def __init__(self, send: Callable[[Any, TunnelData], Any], max_elements: int = 20_000) -> None:
        self.send = send
        self.participating: dict[int, HopConfig] = {}
        self.filter = DecayingBloomFilter(max_elements)

    def add_tunnel(self, tid: int, config: HopConfig) -> None:
        self.participating[tid] = config

    def expire_tunnels(self, now: float | None = None) -> None:
        """Drop every tunnel whose expiry time is not after ``now``."""
        if now is None:
            now = time.time()
        self.participating = {
            tid: config for tid, config in self.participating.items() if config.expires > now
        }

    def decay_filter(self) -> None:
        self.filter.decay()

    def handle_message(self, sender: bytes, td: TunnelData) -> bool:
        """Process one message; return True if it was forwarded, False if dropped."""
        config = self.participating.get(td.tid)
        if config is None:
            log.warning("Dropping TunnelData message: unknown TunnelId")
            return False

        hop = config.hop_data
        if isinstance(hop, (Intermediate, OutboundEndpoint)) and sender != hop.from_ident:
            log.warning("Dropping TunnelData message: from the wrong peer")
            return False

        # Duplicates are detected on the XOR of the IV and the first block.
        filter_value = bytes(a ^ b for a, b in zip(td.data[:16], td.data[16:32]))
        if self.filter.feed(filter_value):
            log.warning("Dropping TunnelData message: duplicate")
            return False

        if not isinstance(hop, Intermediate):
            raise ValueError(f"{type(hop).__name__} hops are not supported")
        process_hop(hop.next_hop, td, config.layer_cipher, self.send)
        return True

    def _add_new_tunnels(self, new_tunnels: asyncio.Queue) -> None:
        while True:
            try:
                tid, config = new_tunnels.get_nowait()
            except asyncio.QueueEmpty:
                return
            self.add_tunnel(tid, config)

    async def run(self, inbound: asyncio.Queue, new_tunnels: asyncio.Queue) -> None:
        """Serve ``(sender, TunnelData)`` items from ``inbound`` until it yields None."""
        loop = asyncio.get_running_loop()
        next_expire = loop.time() + EXPIRE_TUNNELS_INTERVAL
        next_decay = loop.time() + TUNNEL_LIFETIME
        while True:
            self._add_new_tunnels(new_tunnels)
            now = loop.time()
            if now >= next_expire:
                self.expire_tunnels()
                next_expire = now + EXPIRE_TUNNELS_INTERVAL
            if now >= next_decay:
                self.decay_filter()
                next_decay = now + TUNNEL_LIFETIME

            timeout = max(0.0, min(next_expire, next_decay) - now)
            try:
                item = await asyncio.wait_for(inbound.get(), timeout)
            except asyncio.TimeoutError:
                continue
            if item is None:
                return

            self._add_new_tunnels(new_tunnels)
            sender, message = item
            if not isinstance(message, TunnelData):
                log.warning("Received unexpected message from %r: %r", sender, message)
                continue
            try:
                self.handle_message(sender, message)
            except Exception:
                log.exception("Error while processing a hop")