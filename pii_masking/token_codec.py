"""
Reversible token codec: AES-256-CTR under a key derived from the signing secret.

Token wire format (ASCII, no whitespace):

    <hex(iv)>:<hex(ciphertext)>

- iv: 16 fresh random bytes per call, so equal plaintexts give different tokens
- ciphertext: AES-256-CTR of the UTF-8 plaintext, same length as the plaintext

There is no authentication tag: a flipped ciphertext bit decodes to a different
plaintext without any error. The format is kept as-is for interoperability with
tokens produced by other implementations.
"""

from __future__ import annotations

import hashlib
import os
import re

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from pii_masking.errors import DecryptionFailed, MalformedToken


KEY_SIZE = 32
IV_SIZE = 16
TOKEN_SEPARATOR = ":"

TOKEN_RE = re.compile(r"[0-9a-fA-F]{32}:(?:[0-9a-fA-F]{2})*")

# A token inside surrounding text, as left behind by regex masking. Hex
# characters directly around it make the boundary ambiguous, so they block the match.
EMBEDDED_TOKEN_RE = re.compile(r"(?<![0-9a-fA-F])[0-9a-fA-F]{32}:(?:[0-9a-fA-F]{2})*(?![0-9a-fA-F])")


def derive_key(secret: str) -> bytes:
    """SHA-256 of the UTF-8 secret: a 32-byte AES-256 key."""
    return hashlib.sha256(secret.encode("utf-8")).digest()


def looks_like_token(value: str) -> bool:
    return TOKEN_RE.fullmatch(value) is not None


class TokenCodec:
    """
    Encrypts single string values to tokens and back.

    Holds only the derived key; a new cipher context is built per call, so one
    codec can be shared between threads.
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(f"key must be {KEY_SIZE} bytes, got {len(key)}")
        self._key = key

    @classmethod
    def from_secret(cls, secret: str) -> "TokenCodec":
        return cls(derive_key(secret))

    def _cipher(self, iv: bytes) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CTR(iv))

    def encode(self, plaintext: str) -> str:
        iv = os.urandom(IV_SIZE)
        encryptor = self._cipher(iv).encryptor()
        ciphertext = encryptor.update(plaintext.encode("utf-8")) + encryptor.finalize()
        return iv.hex() + TOKEN_SEPARATOR + ciphertext.hex()

    def decode(self, token: str) -> str:
        if not looks_like_token(token):
            raise MalformedToken("expected '<32 hex chars>:<even-length hex>'")

        iv_hex, cipher_hex = token.split(TOKEN_SEPARATOR, 1)
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(cipher_hex)
            decryptor = self._cipher(iv).decryptor()
            plaintext = decryptor.update(ciphertext) + decryptor.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise DecryptionFailed(f"could not decrypt token: {e}") from e

    def decode_embedded(self, text: str) -> str:
        """
        Decode every token found in `text`, keeping the text around them.

        A whole-string token decodes exactly like `decode`. Text without any
        token raises MalformedToken.
        """
        if looks_like_token(text):
            return self.decode(text)
        decoded, count = EMBEDDED_TOKEN_RE.subn(lambda m: self.decode(m.group(0)), text)
        if count == 0:
            raise MalformedToken("no '<32 hex chars>:<even-length hex>' token in string")
        return decoded
