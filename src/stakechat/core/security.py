"""Wallet address and EIP-191 helpers shared by the signature services."""
from __future__ import annotations

from eth_account.messages import defunct_hash_message
from eth_utils import is_hex_address

SIGNATURE_LENGTH_BYTES = 65


def normalize_address(address: str) -> str:
    """Return ``address`` as a lowercase 0x-prefixed hex string.

    Raises:
        ValueError: If ``address`` is not a 20-byte hex address.
    """
    cleaned = address.strip()
    if cleaned[:2].lower() != "0x" or not is_hex_address(cleaned):
        raise ValueError("Wallet address must be 0x followed by 40 hex characters")
    return cleaned.lower()


def decode_hex_blob(value: str | bytes) -> bytes | None:
    """Decode a hex string with optional ``0x`` prefix; None if it is not hex."""
    if isinstance(value, bytes):
        return value
    cleaned = value.strip()
    if cleaned[:2].lower() == "0x":
        cleaned = cleaned[2:]
    if not cleaned:
        return None
    try:
        return bytes.fromhex(cleaned)
    except ValueError:
        return None


def personal_message_hash(message: str) -> bytes:
    """Return the EIP-191 personal-message digest of ``message``."""
    return bytes(defunct_hash_message(text=message))


def mask(value: str | None, keep: int = 10) -> str:
    """Return a log-safe prefix of a credential."""
    if not value:
        return "<none>"
    return value if len(value) <= keep else f"{value[:keep]}..."
