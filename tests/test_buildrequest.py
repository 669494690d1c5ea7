import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from iretunnel.buildrequest import (
    BUILD_RECORD_LEN,
    MAX_REQUEST_AGE,
    MAX_REQUEST_FUTURE,
    TUNNEL_ACCEPT,
    TUNNEL_REJECT_CRIT,
    BuildRequestDropped,
    BuildRequestRecord,
    ParticipantType,
    check_build_request,
    encrypt_entries,
    find_our_entry,
    reply_for,
)

OUR_HASH = bytes([7]) * 32
FROM_IDENT = bytes([1]) * 32
NEXT_IDENT = bytes([3]) * 32
REQUEST_HOURS = 100
REQUEST_SECS = REQUEST_HOURS * 3600


def make_record(hop_type=ParticipantType.INTERMEDIATE, next_ident=NEXT_IDENT):
    return BuildRequestRecord(
        receive_tid=1,
        our_ident=OUR_HASH,
        next_tid=2,
        next_ident=next_ident,
        hop_type=hop_type,
        request_time=REQUEST_HOURS,
        send_msg_id=42,
    )


def test_find_our_entry_matches_prefix():
    entries = [bytes([9]) * BUILD_RECORD_LEN, OUR_HASH[:16] + bytes(BUILD_RECORD_LEN - 16)]
    assert find_our_entry(entries, OUR_HASH) == 1


def test_find_our_entry_none():
    entries = [bytes([9]) * BUILD_RECORD_LEN] * 8
    assert find_our_entry(entries, OUR_HASH) is None


def test_valid_request_passes():
    assert check_build_request(make_record(), FROM_IDENT, OUR_HASH, REQUEST_SECS) is None


def test_drop_when_we_are_next_hop():
    with pytest.raises(BuildRequestDropped) as exc:
        check_build_request(make_record(next_ident=OUR_HASH), FROM_IDENT, OUR_HASH, REQUEST_SECS)
    assert "next hop" in exc.value.reason


def test_obep_may_name_us_as_next_hop():
    record = make_record(ParticipantType.OUTBOUND_ENDPOINT, next_ident=OUR_HASH)
    assert check_build_request(record, FROM_IDENT, OUR_HASH, REQUEST_SECS) is None


def test_drop_cycle_for_intermediate():
    with pytest.raises(BuildRequestDropped):
        check_build_request(make_record(next_ident=FROM_IDENT), FROM_IDENT, OUR_HASH, REQUEST_SECS)


def test_cycle_check_skipped_for_gateway():
    record = make_record(ParticipantType.INBOUND_GATEWAY, next_ident=FROM_IDENT)
    assert check_build_request(record, FROM_IDENT, OUR_HASH, REQUEST_SECS) is None


def test_age_limits():
    record = make_record()
    assert check_build_request(record, FROM_IDENT, OUR_HASH, REQUEST_SECS + MAX_REQUEST_AGE) is None
    with pytest.raises(BuildRequestDropped) as exc:
        check_build_request(record, FROM_IDENT, OUR_HASH, REQUEST_SECS + MAX_REQUEST_AGE + 1)
    assert "old" in exc.value.reason


def test_future_limits():
    record = make_record()
    assert check_build_request(record, FROM_IDENT, OUR_HASH, REQUEST_SECS - MAX_REQUEST_FUTURE) is None
    with pytest.raises(BuildRequestDropped) as exc:
        check_build_request(record, FROM_IDENT, OUR_HASH, REQUEST_SECS - MAX_REQUEST_FUTURE - 1)
    assert "future" in exc.value.reason


@pytest.mark.parametrize(
    "hop_type, expected",
    [
        (ParticipantType.INTERMEDIATE, TUNNEL_ACCEPT),
        (ParticipantType.INBOUND_GATEWAY, TUNNEL_REJECT_CRIT),
        (ParticipantType.OUTBOUND_ENDPOINT, TUNNEL_REJECT_CRIT),
    ],
)
def test_reply_for(hop_type, expected):
    assert reply_for(make_record(hop_type)) == expected


def test_encrypt_entries_round_trip():
    reply_key = bytes([2]) * 32
    reply_iv = bytes([4]) * 16
    entries = [bytes([i]) * BUILD_RECORD_LEN for i in range(3)]
    encrypted = encrypt_entries(entries, reply_key, reply_iv)
    assert len(encrypted) == 3
    for plain, enc in zip(entries, encrypted):
        assert len(enc) == BUILD_RECORD_LEN
        assert enc != plain
        dec = Cipher(algorithms.AES(reply_key), modes.CBC(reply_iv)).decryptor()
        assert dec.update(enc) + dec.finalize() == plain


def test_encrypt_entries_uses_same_iv_for_each():
    entry = bytes([5]) * BUILD_RECORD_LEN
    encrypted = encrypt_entries([entry, entry], bytes(32), bytes(16))
    assert encrypted[0] == encrypted[1]


def test_encrypt_entries_rejects_bad_lengths():
    with pytest.raises(ValueError):
        encrypt_entries([bytes(10)], bytes(32), bytes(16))
    with pytest.raises(ValueError):
        encrypt_entries([bytes(BUILD_RECORD_LEN)], bytes(16), bytes(16))
    with pytest.raises(ValueError):
        encrypt_entries([bytes(BUILD_RECORD_LEN)], bytes(32), bytes(8))