import asyncio
import time

import pytest

from iretunnel.encryption import LayerCipher
from iretunnel.processor import (
    HopConfig,
    InboundGateway,
    Intermediate,
    NextHop,
    OutboundEndpoint,
    Participant,
    TunnelData,
    process_hop,
)

PREV = bytes([1] * 32)
NEXT_ROUTER = "next-router"


def make_cipher():
    return LayerCipher(bytes([1] * 32), bytes([2] * 32))


def make_data(n):
    return bytes([n]) * 16 + bytes(1008)


def make_participant(hop_data=None, expires=None):
    sent = []
    participant = Participant(lambda router, td: sent.append((router, td)), 100)
    if hop_data is None:
        hop_data = Intermediate(PREV, NextHop(NEXT_ROUTER, 7))
    if expires is None:
        expires = time.time() + 600
    participant.add_tunnel(5, HopConfig(hop_data, make_cipher(), expires))
    return participant, sent


def test_process_hop_round_trip():
    sent = []
    cipher = make_cipher()
    td = TunnelData(5, make_data(9))
    out = process_hop(NextHop(NEXT_ROUTER, 7), td, cipher, lambda r, m: sent.append((r, m)))
    assert sent == [(NEXT_ROUTER, out)]
    assert out.tid == 7
    assert cipher.decrypt_layer(out.data) == td.data


def test_intermediate_forwards():
    participant, sent = make_participant()
    td = TunnelData(5, make_data(3))
    assert participant.handle_message(PREV, td)
    assert len(sent) == 1
    router, out = sent[0]
    assert router == NEXT_ROUTER
    assert out.tid == 7
    assert make_cipher().decrypt_layer(out.data) == td.data


def test_unknown_tunnel_dropped():
    participant, sent = make_participant()
    assert not participant.handle_message(PREV, TunnelData(6, make_data(3)))
    assert sent == []


def test_wrong_sender_dropped():
    participant, sent = make_participant()
    assert not participant.handle_message(bytes([9] * 32), TunnelData(5, make_data(3)))
    assert sent == []


def test_duplicate_dropped_until_two_decays():
    participant, sent = make_participant()
    td = TunnelData(5, make_data(4))
    assert participant.handle_message(PREV, td)
    assert not participant.handle_message(PREV, td)
    participant.decay_filter()
    assert not participant.handle_message(PREV, td)
    participant.decay_filter()
    participant.decay_filter()
    assert participant.handle_message(PREV, td)
    assert len(sent) == 2


def test_expire_tunnels():
    participant, _ = make_participant(expires=100.0)
    participant.add_tunnel(
        8, HopConfig(Intermediate(PREV, NextHop(NEXT_ROUTER, 9)), make_cipher(), 300.0)
    )
    participant.expire_tunnels(now=200.0)
    assert set(participant.participating) == {8}
    assert not participant.handle_message(PREV, TunnelData(5, make_data(1)))


def test_outbound_endpoint_unsupported():
    participant, sent = make_participant(hop_data=OutboundEndpoint(PREV))
    with pytest.raises(ValueError):
        participant.handle_message(PREV, TunnelData(5, make_data(2)))
    assert sent == []


def test_inbound_gateway_skips_sender_check_but_unsupported():
    participant, _ = make_participant(hop_data=InboundGateway(NextHop(NEXT_ROUTER, 7)))
    with pytest.raises(ValueError):
        participant.handle_message(bytes([9] * 32), TunnelData(5, make_data(2)))


@pytest.mark.asyncio
async def test_run_processes_queue():
    sent = []
    participant = Participant(lambda router, td: sent.append((router, td)), 100)
    inbound = asyncio.Queue()
    new_tunnels = asyncio.Queue()
    config = HopConfig(
        Intermediate(PREV, NextHop(NEXT_ROUTER, 7)), make_cipher(), time.time() + 600
    )
    await new_tunnels.put((5, config))
    td = TunnelData(5, make_data(6))
    await inbound.put((PREV, td))
    await inbound.put((PREV, "not tunnel data"))
    await inbound.put((PREV, td))
    await inbound.put(None)
    await asyncio.wait_for(participant.run(inbound, new_tunnels), 5)
    assert len(sent) == 1
    assert sent[0][1].tid == 7
    assert participant.participating == {5: config}