# iretunnel

Building blocks for a router that relays traffic in the tunnels of an
anonymous overlay network: one hop's layer of encryption, the tunnel message
wire format, duplicate detection, and the handling of tunnel build requests.

## Modules

### `iretunnel.util`

- `DecayingBloomFilter(max_elements)`: a two-layer Bloom filter for spotting
  duplicates in a live stream, sized for a false positive rate of 1e-5 per
  layer. `feed(data)` returns `True` if the data was seen before, and otherwise
  records it and returns `False`. `decay()` makes the current layer the
  previous one and starts a fresh current layer, so an entry is remembered for
  at least one and at most two decay periods. `max_elements` below 1 raises
  `ValueError`.
- `colon_delimited_hex(data)`: formats bytes as `aa:bb:cc`.

### `iretunnel.encryption`

- `LayerCipher(iv_key, layer_key)`: both keys are 32 bytes.
  `encrypt_layer(data)` and `decrypt_layer(data)` take 1024 bytes of tunnel
  data and return the processed 1024 bytes. The first 16 bytes (the IV) are
  handled with AES-256-ECB under the IV key, the remaining 1008 bytes with
  AES-256-CBC under the layer key. Wrong lengths raise `ValueError`.

### `iretunnel.frame`

- Delivery types `LocalDelivery`, `TunnelDelivery(tid, to)` and
  `RouterDelivery(to)`, where `to` is a 32-byte router hash.
- `FirstFragmentDeliveryInstructions(delivery_type, msg_id=None)` and
  `FollowOnFragmentDeliveryInstructions(fragment_number, last_fragment, msg_id)`,
  with `encode_first_frag_di`, `decode_first_frag_di`,
  `encode_follow_on_frag_di`, `decode_follow_on_frag_di`, and
  `encode_delivery_instructions` / `decode_delivery_instructions` for either
  kind. The decoders return the instructions and the bytes that remain.
- `TunnelMessage(fragments)`: a sequence of `(instructions, fragment_bytes)`
  pairs. `byte_len()` gives the encoded length of the fragments.
- `encode_tunnel_message(iv, message)`: writes the IV, a 4-byte checksum,
  non-zero padding, a zero byte and the fragments, 1024 bytes in all for a
  16-byte IV. `decode_tunnel_message(data)` checks the checksum and reads the
  fragments back.
- `checksum(buf, iv)` is the first four bytes of SHA-256 over `buf` then `iv`;
  `validate_checksum(expected, buf, iv)` raises on a mismatch.
- Every encoding or decoding failure raises `FrameError`, a `ValueError`.

### `iretunnel.processor`

- `TunnelData(tid, data)`, `NextHop(router, tid)`, the hop kinds
  `InboundGateway(next_hop)`, `Intermediate(from_ident, next_hop)` and
  `OutboundEndpoint(from_ident)`, and `HopConfig(hop_data, layer_cipher, expires)`
  with `expires` as a Unix time.
- `process_hop(next_hop, td, layer_cipher, send)`: applies the layer, sets the
  next hop's tunnel ID, calls `send(router, tunnel_data)` and returns what was
  sent.
- `Participant(send, max_elements=20000)`:
  - `add_tunnel(tid, config)` and `expire_tunnels(now=None)`, which drops
    tunnels whose expiry is not after `now`.
  - `handle_message(sender, td)` returns `True` when the message was forwarded
    and `False` when it was dropped: unknown tunnel ID, a sender other than the
    tunnel's previous hop, or a duplicate (judged on the XOR of the IV and the
    first data block). Only intermediate hops are forwarded; data for an
    inbound gateway or outbound endpoint tunnel raises `ValueError`.
  - `decay_filter()` decays the duplicate filter.
  - `run(inbound, new_tunnels)` is a coroutine serving `(sender, TunnelData)`
    items from one `asyncio.Queue` and `(tid, HopConfig)` items from another.
    It expires tunnels every 10 seconds, decays the filter every 600 seconds,
    logs and skips anything that is not `TunnelData`, and returns when
    `inbound` yields `None`.

### `iretunnel.buildrequest`

- `ParticipantType`, `BuildRequestRecord` (a decrypted record; `request_time`
  is in hours since the Unix epoch) and `BuildRequestDropped`.
- `find_our_entry(entries, our_hash)`: index of the record whose first 16
  bytes match our hash, or `None`.
- `check_build_request(record, from_ident, our_hash, now=None)` raises
  `BuildRequestDropped` when we are our own next hop, when an intermediate
  hop's previous and next hop are the same, or when the request time is more
  than 65 minutes in the past or 5 minutes in the future.
- `reply_for(record)`: `TUNNEL_ACCEPT` (0) for intermediate hops,
  `TUNNEL_REJECT_CRIT` (50) for every other position.
- `encrypt_entries(entries, reply_key, reply_iv)`: AES-256-CBC of each
  528-byte record.

### `iretunnel.acceptor`

- `HopAcceptor(our_hash, decrypt, lookup, register, send, encode_response, bloom_filter=None)`.
  The collaborators may be plain functions or coroutine functions.
  `await accept(from_ident, entries, index, is_variable)` decrypts the record
  at `index`, drops duplicates (by reply key) and requests that fail
  `check_build_request`, looks up the next hop (with a 30 second timeout),
  registers a `HopConfig` for accepted requests, writes the encoded response
  into our record, encrypts all records and calls
  `send(router, kind, msg_id, entries)`. `kind` is `"TunnelBuild"` or
  `"VariableTunnelBuild"`, or the matching `...Reply` kind when we are the
  outbound endpoint. It returns the reply code sent, or `None` when the
  request was dropped. A fixed-size build must hold exactly 8 records.

## What the package does not do

It has no transports, no network database, no router identity or key
handling, and no command to run. Decrypting build request records,
looking up routers, encoding build responses and sending messages are left to
the functions you hand to `HopAcceptor`, `Participant` and `process_hop`.
Tunnel data for inbound gateway and outbound endpoint positions is not
processed.

## Installing

```
pip install .
```

## Example

```python
from iretunnel.encryption import LayerCipher
from iretunnel.frame import (
    FirstFragmentDeliveryInstructions,
    LocalDelivery,
    TunnelMessage,
    decode_tunnel_message,
    encode_tunnel_message,
)
from iretunnel.util import DecayingBloomFilter

cipher = LayerCipher(bytes([1]) * 32, bytes([2]) * 32)
data = bytes(1024)
encrypted = cipher.encrypt_layer(data)
assert cipher.decrypt_layer(encrypted) == data

message = TunnelMessage([(FirstFragmentDeliveryInstructions(LocalDelivery()), b"hello")])
wire = encode_tunnel_message(bytes(16), message)
assert len(wire) == 1024
assert decode_tunnel_message(wire) == message

seen = DecayingBloomFilter(10)
assert seen.feed(b"first") is False
assert seen.feed(b"first") is True
```

## Running the tests

```
pip install ".[test]"
pytest
```