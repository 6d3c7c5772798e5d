"""Token encryption helpers."""

from .token_crypto import decrypt, encrypt

__all__ = ["encrypt", "decrypt"]
