import pytest

from iretunnel.encryption import LayerCipher

ZEROS = bytes(1024)


def test_round_trip():
    cipher = LayerCipher(bytes([1] * 32), bytes([2] * 32))

    data = cipher.encrypt_layer(ZEROS)
    assert data != ZEROS
    data = cipher.decrypt_layer(data)
    assert data == ZEROS

    data = cipher.decrypt_layer(data)
    assert data != ZEROS
    data = cipher.encrypt_layer(data)
    assert data == ZEROS


def test_output_length_preserved():
    cipher = LayerCipher(bytes([3] * 32), bytes([4] * 32))
    assert len(cipher.encrypt_layer(bytes(range(256)) * 4)) == 1024


def test_different_keys_differ():
    a = LayerCipher(bytes([1] * 32), bytes([2] * 32))
    b = LayerCipher(bytes([1] * 32), bytes([3] * 32))
    assert a.encrypt_layer(ZEROS)[16:] != b.encrypt_layer(ZEROS)[16:]


def test_wrong_data_length():
    cipher = LayerCipher(bytes(32), bytes(32))
    with pytest.raises(ValueError):
        cipher.encrypt_layer(bytes(1000))
    with pytest.raises(ValueError):
        cipher.decrypt_layer(bytes(1025))


def test_wrong_key_length():
    with pytest.raises(ValueError):
        LayerCipher(bytes(16), bytes(32))
    with pytest.raises(ValueError):
        LayerCipher(bytes(32), bytes(31))