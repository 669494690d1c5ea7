"""Layered encryption and decryption of tunnel messages."""

from __future__ import annotations

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

__all__ = ["LayerCipher", "TUNNEL_DATA_LEN"]

TUNNEL_DATA_LEN = 1024
_IV_LEN = 16
_KEY_LEN = 32


def _check_key(name: str, key: bytes) -> bytes:
    key = bytes(key)
    if len(key) != _KEY_LEN:
        raise ValueError(f"{name} must be {_KEY_LEN} bytes, got {len(key)}")
    return key


class LayerCipher:
    """Applies one tunnel hop's layer of encryption, given its IV and layer keys."""

    def __init__(self, iv_key: bytes, layer_key: bytes) -> None:
        self._iv_cipher = Cipher(algorithms.AES(_check_key("iv_key", iv_key)), modes.ECB())
        self._layer_key = _check_key("layer_key", layer_key)

    def __repr__(self) -> str:
        return "LayerCipher(...)"

    def _iv_encrypt(self, block: bytes) -> bytes:
        enc = self._iv_cipher.encryptor()
        return enc.update(block) + enc.finalize()

    def _iv_decrypt(self, block: bytes) -> bytes:
        dec = self._iv_cipher.decryptor()
        return dec.update(block) + dec.finalize()

    def _layer(self, iv: bytes):
        return Cipher(algorithms.AES(self._layer_key), modes.CBC(iv))

    @staticmethod
    def _check_data(data: bytes) -> bytes:
        data = bytes(data)
        if len(data) != TUNNEL_DATA_LEN:
            raise ValueError(f"tunnel data must be {TUNNEL_DATA_LEN} bytes, got {len(data)}")
        return data

    def encrypt_layer(self, data: bytes) -> bytes:
        """Encrypt 1024 bytes of tunnel data with this hop's keys; return the result."""
        data = self._check_data(data)
        iv = self._iv_encrypt(data[:_IV_LEN])
        enc = self._layer(iv).encryptor()
        body = enc.update(data[_IV_LEN:]) + enc.finalize()
        return self._iv_encrypt(iv) + body

    def decrypt_layer(self, data: bytes) -> bytes:
        """Decrypt 1024 bytes of tunnel data with this hop's keys; return the result."""
        data = self._check_data(data)
        iv = self._iv_decrypt(data[:_IV_LEN])
        dec = self._layer(iv).decryptor()
        body = dec.update(data[_IV_LEN:]) + dec.finalize()
        return self._iv_decrypt(iv) + body