"""Stake lookups used to gate privileged access.

Two providers are supported:

- ``dune``: a saved Dune query that reports ``net_staked_tokens`` per wallet
  and subnet. Values are already scaled to whole tokens.
- ``indexer``: a JSON endpoint reporting the staked balance in integer base
  units. Values are divided by ``10 ** STAKE_TOKEN_DECIMALS`` before the
  threshold comparison.

Any failure fails closed: the wallet is treated as not staked. The configured
allow-list is an operational override that bypasses the live lookup; every
use of it is logged.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from stakechat.core.errors import StakeCheckUnavailable
from stakechat.core.settings import settings

logger = logging.getLogger(__name__)

HTTP_OK = 200


@dataclass(frozen=True)
class StakeConfig:
    """Immutable configuration for stake lookups."""

    provider: str
    min_stake: Decimal
    allowlist: frozenset[str]
    timeout_seconds: float
    dune_api_key: str | None
    dune_api_base_url: str
    dune_query_id: int
    subnet_id: str
    stake_api_url: str | None
    amount_field: str
    token_decimals: int


def load_stake_config() -> StakeConfig:
    """Build configuration object from global settings."""

    return StakeConfig(
        provider=settings.stake_provider,
        min_stake=settings.min_stake,
        allowlist=frozenset(settings.stake_allowlist),
        timeout_seconds=float(settings.stake_http_timeout_seconds),
        dune_api_key=settings.dune_api_key,
        dune_api_base_url=settings.dune_api_base_url,
        dune_query_id=settings.dune_query_id,
        subnet_id=settings.subnet_id,
        stake_api_url=settings.stake_api_url,
        amount_field=settings.stake_amount_field,
        token_decimals=settings.stake_token_decimals,
    )


def scale_base_units(raw_amount: Any, decimals: int) -> Decimal:
    """Convert an integer amount of base units to whole tokens."""
    if raw_amount is None or isinstance(raw_amount, (float, bool)):
        raise ValueError("Base-unit amounts must be integers")
    value = _to_decimal(raw_amount)
    if value != value.to_integral_value():
        raise ValueError("Base-unit amounts must be integers")
    return value.scaleb(-decimals)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("Stake amount must be numeric")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as err:
        raise ValueError(f"Stake amount is not numeric: {value!r}") from err
    if not amount.is_finite():
        raise ValueError("Stake amount must be finite")
    return amount


class StakeVerifier:
    """Decide whether a wallet holds at least the minimum stake."""

    def __init__(
        self,
        config: StakeConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or load_stake_config()
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()
        if self.config.allowlist:
            logger.warning(
                "Stake allow-list active for %d wallet(s): %s",
                len(self.config.allowlist),
                ", ".join(sorted(self.config.allowlist)),
            )

    @property
    def allowlist(self) -> Iterable[str]:
        return sorted(self.config.allowlist)

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                )
        return self._client

    async def is_staked(self, address: str) -> bool:
        """Return True if ``address`` meets the minimum stake.

        Network failures, malformed responses and missing configuration all
        return False.
        """
        wallet = address.strip().lower()
        if wallet in self.config.allowlist:
            logger.warning("Stake allow-list override applied for %s", wallet)
            return True

        try:
            amount = await self.staked_amount(wallet)
        except StakeCheckUnavailable as exc:
            logger.warning("Stake check unavailable for %s: %s", wallet, exc.__cause__ or exc)
            return False

        staked = amount >= self.config.min_stake
        logger.info(
            "Stake check for %s: amount=%s min=%s staked=%s",
            wallet,
            amount,
            self.config.min_stake,
            staked,
        )
        return staked

    async def staked_amount(self, address: str) -> Decimal:
        """Return the scaled staked-token amount for ``address``.

        Raises:
            StakeCheckUnavailable: If the provider cannot answer.
        """
        try:
            if self.config.provider == "indexer":
                return await self._fetch_indexer(address)
            return await self._fetch_dune(address)
        except StakeCheckUnavailable:
            raise
        except (httpx.HTTPError, ValueError, KeyError, TypeError, IndexError) as exc:
            raise StakeCheckUnavailable() from exc

    async def _get_json(
        self,
        url: str,
        *,
        params: dict[str, str],
        headers: dict[str, str] | None = None,
    ) -> Any:
        client = await self._ensure_client()
        response = await client.get(url, params=params, headers=headers)
        if response.status_code != HTTP_OK:
            raise StakeCheckUnavailable() from httpx.HTTPStatusError(
                f"Stake provider responded with {response.status_code}",
                request=response.request,
                response=response,
            )
        return response.json()

    async def _fetch_dune(self, address: str) -> Decimal:
        if not self.config.dune_api_key:
            raise StakeCheckUnavailable() from ValueError("DUNE_API_KEY is not configured")

        url = (
            f"{self.config.dune_api_base_url.rstrip('/')}"
            f"/api/v1/query/{self.config.dune_query_id}/results"
        )
        payload = await self._get_json(
            url,
            params={
                "filters": f"subnet_id = {self.config.subnet_id} AND wallet_address = {address}",
                "columns": "net_staked_tokens",
            },
            headers={"X-DUNE-API-KEY": self.config.dune_api_key},
        )
        rows = payload["result"]["rows"]
        if not isinstance(rows, list):
            raise TypeError("Dune result rows must be a list")
        if not rows:
            return Decimal(0)
        return _to_decimal(rows[0]["net_staked_tokens"])

    async def _fetch_indexer(self, address: str) -> Decimal:
        if not self.config.stake_api_url:
            raise StakeCheckUnavailable() from ValueError("STAKE_API_URL is not configured")

        payload = await self._get_json(
            self.config.stake_api_url,
            params={"address": address, "subnet": self.config.subnet_id},
        )
        raw_amount = payload[self.config.amount_field]
        return scale_base_units(raw_amount, self.config.token_decimals)

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None and self._owns_client:
                await self._client.aclose()
                self._client = None


class _StakeVerifierSingleton:
    """Singleton wrapper for StakeVerifier."""

    _instance: StakeVerifier | None = None

    @classmethod
    def get_instance(cls) -> StakeVerifier:
        if cls._instance is None:
            cls._instance = StakeVerifier()
        return cls._instance


def get_stake_verifier() -> StakeVerifier:
    """Return the shared stake verifier."""
    return _StakeVerifierSingleton.get_instance()
