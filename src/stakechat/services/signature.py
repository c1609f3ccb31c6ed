# src/stakechat/services/signature.py
"""Signature recovery cascade for wallet personal-message signatures.

Wallet clients encode signatures inconsistently and the blob carries no tag
describing its encoding, so recovery runs a fixed, ordered list of stages:

1. ``standard``        canonical 65-byte r||s||v over the EIP-191 hash.
2. ``normalized_v``    same, after adding 27 to a recovery id below 27.
3. ``embedded_json``   hex blob holding a JSON object (WebAuthn wrapping):
                       the nested ``signature`` / ``response.signature``
                       value, then the 65 bytes preceding the JSON span.
4. ``hash_fallback``   raw public-key recovery against alternative digests
                       (eth_sign over unprefixed data, pre-hashed messages,
                       hex-encoded messages, blobs with trailing bytes).
5. ``json_string``     a non-hex blob that is itself JSON carrying a
                       nested signature.

Each stage is isolated: parse or crypto failures only move the cascade to the
next stage and never escape :meth:`SignatureRecoveryService.recover`. A stage
that recovers an address other than the claimed wallet does not end the
cascade; the first such address is kept and returned with
``matches_claim=False`` only when no stage recovers the claimed wallet.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, Final

from eth_account import Account
from eth_account.messages import defunct_hash_message, encode_defunct
from eth_keys import keys
from eth_utils import keccak

from stakechat.core.security import SIGNATURE_LENGTH_BYTES, decode_hex_blob, mask

logger = logging.getLogger(__name__)

V_OFFSET: Final[int] = 27
HASH_LENGTH_BYTES: Final[int] = 32
_JSON_DECODER: Final = json.JSONDecoder()


@dataclass(frozen=True)
class Recovered:
    """A signer address recovered by one of the cascade stages."""

    address: str
    stage: str
    matches_claim: bool


@dataclass(frozen=True)
class NotRecovered:
    """No stage produced a signer address."""


NOT_RECOVERED: Final = NotRecovered()
RecoveryOutcome = Recovered | NotRecovered


def _recover_personal(message: str, signature: bytes) -> str | None:
    """Recover the EIP-191 signer of ``message``; None on any failure."""
    if len(signature) != SIGNATURE_LENGTH_BYTES:
        return None
    try:
        recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception:
        return None
    return str(recovered).lower()


def _recover_from_digest(digest: bytes, signature: bytes) -> str | None:
    """Recover the signer of a raw 32-byte digest; None on any failure."""
    if len(signature) < SIGNATURE_LENGTH_BYTES or len(digest) != HASH_LENGTH_BYTES:
        return None
    v = signature[64]
    if v >= V_OFFSET:
        v -= V_OFFSET
    if v not in (0, 1):
        return None
    try:
        sig = keys.Signature(signature_bytes=signature[:64] + bytes([v]))
        public_key = sig.recover_public_key_from_msg_hash(digest)
    except Exception:
        return None
    return public_key.to_checksum_address().lower()


def _with_normalized_v(signature: bytes) -> bytes | None:
    if len(signature) != SIGNATURE_LENGTH_BYTES or signature[64] >= V_OFFSET:
        return None
    return signature[:64] + bytes([signature[64] + V_OFFSET])


def _recover_nested(message: str, value: Any) -> str | None:
    """Run standard then normalized recovery on a nested signature value."""
    if not isinstance(value, str):
        return None
    signature = decode_hex_blob(value)
    if signature is None:
        return None
    address = _recover_personal(message, signature)
    if address is None:
        normalized = _with_normalized_v(signature)
        if normalized is not None:
            address = _recover_personal(message, normalized)
    return address


def _nested_signature(payload: Any) -> Any:
    """Return ``signature`` or ``response.signature`` from a JSON payload."""
    if isinstance(payload, str):
        return payload
    if not isinstance(payload, dict):
        return None
    if payload.get("signature") is not None:
        return payload["signature"]
    response = payload.get("response")
    if isinstance(response, dict):
        return response.get("signature")
    return None


class SignatureRecoveryService:
    """Recover wallet addresses from signature blobs of unknown encoding."""

    def __init__(self) -> None:
        self._stages: tuple[tuple[str, Callable[[str, str | bytes], Iterator[str]]], ...] = (
            ("standard", self._standard),
            ("normalized_v", self._normalized_v),
            ("embedded_json", self._embedded_json),
            ("hash_fallback", self._hash_fallback),
            ("json_string", self._json_string),
        )

    @property
    def stage_names(self) -> tuple[str, ...]:
        """Return the cascade order."""
        return tuple(name for name, _ in self._stages)

    def recover(
        self,
        claimed_address: str | None,
        message: str,
        signature: str | bytes,
    ) -> RecoveryOutcome:
        """Return the signer of ``message`` encoded somewhere in ``signature``.

        Args:
            claimed_address: Wallet the client claims to control. When given,
                the cascade keeps searching until a stage recovers it.
            message: Exact text the wallet was asked to sign.
            signature: Opaque signature blob as submitted by the client.

        Returns:
            ``Recovered`` for the claimed wallet, else ``Recovered`` for the
            first address any stage produced, else ``NOT_RECOVERED``.
        """
        claimed = claimed_address.strip().lower() if claimed_address else None
        first: Recovered | None = None

        for name, stage in self._stages:
            try:
                for address in stage(message, signature):
                    if claimed is None or address == claimed:
                        return Recovered(address=address, stage=name, matches_claim=claimed is not None)
                    if first is None:
                        first = Recovered(address=address, stage=name, matches_claim=False)
            except Exception as exc:
                logger.debug("Recovery stage %s failed: %s", name, exc)
                continue

        if first is not None:
            logger.warning(
                "Recovered signer %s does not match claimed wallet %s (stage=%s)",
                first.address,
                claimed,
                first.stage,
            )
            return first

        logger.info("No recovery stage matched signature %s", mask(str(signature)))
        return NOT_RECOVERED

    # --- Stages -----------------------------------------------------------------
    @staticmethod
    def _standard(message: str, blob: str | bytes) -> Iterator[str]:
        signature = decode_hex_blob(blob)
        if signature is None or len(signature) != SIGNATURE_LENGTH_BYTES:
            return
        if signature[64] < V_OFFSET:
            return
        address = _recover_personal(message, signature)
        if address is not None:
            yield address

    @staticmethod
    def _normalized_v(message: str, blob: str | bytes) -> Iterator[str]:
        signature = decode_hex_blob(blob)
        if signature is None:
            return
        normalized = _with_normalized_v(signature)
        if normalized is None:
            return
        address = _recover_personal(message, normalized)
        if address is not None:
            yield address

    @staticmethod
    def _embedded_json(message: str, blob: str | bytes) -> Iterator[str]:
        raw = decode_hex_blob(blob)
        if raw is None:
            return

        # A signature may itself contain a "{" byte, so every opening brace is
        # tried as the start of the JSON span.
        start = raw.find(b"{")
        while start != -1:
            text = raw[start:].decode("utf-8", errors="replace")
            try:
                payload, _ = _JSON_DECODER.raw_decode(text)
            except ValueError:
                payload = None

            if isinstance(payload, dict):
                nested = _recover_nested(message, _nested_signature(payload))
                if nested is not None:
                    yield nested
                if start >= SIGNATURE_LENGTH_BYTES:
                    preceding = raw[start - SIGNATURE_LENGTH_BYTES:start]
                    address = _recover_nested(message, preceding.hex())
                    if address is not None:
                        yield address

            start = raw.find(b"{", start + 1)

    @staticmethod
    def _hash_fallback(message: str, blob: str | bytes) -> Iterator[str]:
        raw = decode_hex_blob(blob)
        if raw is None or len(raw) != SIGNATURE_LENGTH_BYTES:
            return

        digests: list[bytes] = []
        message_bytes = decode_hex_blob(message) if message.startswith("0x") else None
        if message_bytes is not None:
            if len(message_bytes) == HASH_LENGTH_BYTES:
                digests.append(message_bytes)
            digests.append(bytes(defunct_hash_message(primitive=message_bytes)))
        digests.append(keccak(text=message))

        for digest in digests:
            address = _recover_from_digest(digest, raw)
            if address is not None:
                yield address

    @staticmethod
    def _json_string(message: str, blob: str | bytes) -> Iterator[str]:
        if isinstance(blob, bytes) or decode_hex_blob(blob) is not None:
            return
        payload = json.loads(blob)
        address = _recover_nested(message, _nested_signature(payload))
        if address is not None:
            yield address


def get_signature_service() -> SignatureRecoveryService:
    """Return a signature recovery service instance."""
    return SignatureRecoveryService()
