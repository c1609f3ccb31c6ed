"""EIP-1271 verification for smart-contract wallets."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Final

from eth_utils import to_checksum_address
from web3 import AsyncWeb3

from stakechat.core.security import decode_hex_blob, personal_message_hash
from stakechat.core.settings import settings

logger = logging.getLogger(__name__)

EIP1271_MAGIC_VALUE: Final[bytes] = bytes.fromhex("1626ba7e")

EIP1271_ABI: Final[list[dict[str, Any]]] = [
    {
        "constant": True,
        "inputs": [
            {"name": "_hash", "type": "bytes32"},
            {"name": "_signature", "type": "bytes"},
        ],
        "name": "isValidSignature",
        "outputs": [{"name": "magicValue", "type": "bytes4"}],
        "stateMutability": "view",
        "type": "function",
    }
]


def _as_selector(value: Any) -> bytes:
    if isinstance(value, str):
        return bytes.fromhex(value.removeprefix("0x"))
    if isinstance(value, int):
        return value.to_bytes(4, byteorder="big")
    return bytes(value)


class ContractWalletVerifier:
    """Ask a contract account whether it authorizes a signature.

    Every failure path returns False: missing RPC configuration, accounts
    without bytecode, timeouts, reverted calls and unexpected return values.
    """

    def __init__(
        self,
        w3: AsyncWeb3 | None = None,
        *,
        rpc_url: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._timeout = timeout_seconds or settings.chain_rpc_timeout_seconds
        url = rpc_url if rpc_url is not None else settings.chain_rpc_url
        if w3 is None and url:
            w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(url))
        self._w3 = w3

    @property
    def enabled(self) -> bool:
        return self._w3 is not None

    async def verify(self, claimed_address: str, message: str, signature: str | bytes) -> bool:
        """Return True only if ``claimed_address`` returns the EIP-1271 magic value."""
        if self._w3 is None:
            logger.debug("Contract wallet verification skipped: no CHAIN_RPC_URL configured")
            return False

        signature_bytes = decode_hex_blob(signature)
        if signature_bytes is None:
            return False

        try:
            account = to_checksum_address(claimed_address)
        except ValueError:
            return False

        try:
            code = await asyncio.wait_for(self._w3.eth.get_code(account), timeout=self._timeout)
            if len(code) == 0:
                logger.debug("Address %s has no contract code", account)
                return False

            contract = self._w3.eth.contract(address=account, abi=EIP1271_ABI)
            result = await asyncio.wait_for(
                contract.functions.isValidSignature(
                    personal_message_hash(message),
                    signature_bytes,
                ).call(),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("EIP-1271 verification for %s timed out", account)
            return False
        except Exception as exc:
            logger.warning("EIP-1271 verification for %s failed: %s", account, exc)
            return False

        try:
            is_valid = _as_selector(result) == EIP1271_MAGIC_VALUE
        except (TypeError, ValueError, OverflowError):
            is_valid = False

        if is_valid:
            logger.info("EIP-1271 signature accepted for %s", account)
        else:
            logger.warning("EIP-1271 signature rejected for %s", account)
        return is_valid


class _ContractWalletVerifierSingleton:
    """Singleton wrapper for ContractWalletVerifier."""

    _instance: ContractWalletVerifier | None = None

    @classmethod
    def get_instance(cls) -> ContractWalletVerifier:
        if cls._instance is None:
            cls._instance = ContractWalletVerifier()
        return cls._instance


def get_contract_wallet_verifier() -> ContractWalletVerifier:
    """Return the shared contract wallet verifier."""
    return _ContractWalletVerifierSingleton.get_instance()
