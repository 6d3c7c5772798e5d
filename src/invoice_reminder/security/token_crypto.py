"""AES-256-GCM encryption for stored OAuth tokens."""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import TokenIntegrityError

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


def _check_key(key: bytes) -> None:
    if key is None:
        raise ValueError("Key must not be None")
    if len(key) != KEY_SIZE:
        raise ValueError(f"Key must be {KEY_SIZE} bytes.")


def encrypt(plain_text: str, key: bytes) -> tuple[str, str]:
    """Encrypt a token.

    Args:
        plain_text: Token to encrypt
        key: 32-byte AES key

    Returns:
        tuple[str, str]: (base64 ciphertext with the tag appended, base64 nonce)

    Raises:
        ValueError: If the key is not 32 bytes
    """
    _check_key(key)

    nonce = os.urandom(NONCE_SIZE)
    # AESGCM appends the 16-byte tag to the ciphertext
    combined = AESGCM(key).encrypt(nonce, plain_text.encode("utf-8"), None)

    return base64.b64encode(combined).decode("ascii"), base64.b64encode(nonce).decode("ascii")


def decrypt(encrypted_base64: str, nonce_base64: str, key: bytes) -> str:
    """Decrypt a token produced by encrypt().

    Args:
        encrypted_base64: Base64 ciphertext with the tag appended
        nonce_base64: Base64 nonce
        key: 32-byte AES key

    Returns:
        str: Decrypted token

    Raises:
        ValueError: If the key is not 32 bytes
        TokenIntegrityError: If the data is malformed, tampered with or the key is wrong
    """
    _check_key(key)

    try:
        nonce = base64.b64decode(nonce_base64, validate=True)
        encrypted = base64.b64decode(encrypted_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise TokenIntegrityError("Invalid nonce or encrypted data.") from e

    if len(nonce) != NONCE_SIZE or len(encrypted) < TAG_SIZE:
        raise TokenIntegrityError("Invalid nonce or encrypted data.")

    try:
        plain = AESGCM(key).decrypt(nonce, encrypted, None)
    except InvalidTag as e:
        raise TokenIntegrityError("Token authentication failed.") from e

    return plain.decode("utf-8")
