"""Tests for stake lookups and threshold decisions."""

from dataclasses import replace
from decimal import Decimal

import httpx
import pytest

from stakechat.core.errors import StakeCheckUnavailable
from stakechat.services.stake import StakeConfig, StakeVerifier, scale_base_units

WALLET = "0x" + "12" * 20
SUBNET = "0x29d6c72e0af35f863f8c8345529ad5ad19b70b0d46225228e27c082710db4bfb"

BASE_CONFIG = StakeConfig(
    provider="dune",
    min_stake=Decimal("10"),
    allowlist=frozenset(),
    timeout_seconds=5.0,
    dune_api_key="dune-key",
    dune_api_base_url="https://dune.test",
    dune_query_id=5112115,
    subnet_id=SUBNET,
    stake_api_url="https://indexer.test/stake",
    amount_field="stakedAmount",
    token_decimals=18,
)


def _verifier(handler, **overrides) -> StakeVerifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StakeVerifier(replace(BASE_CONFIG, **overrides), client=client)


def _dune_rows(*amounts):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"result": {"rows": [{"net_staked_tokens": amount} for amount in amounts]}},
        )

    return handler


@pytest.mark.asyncio
async def test_dune_request_shape() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"result": {"rows": [{"net_staked_tokens": 25}]}})

    verifier = _verifier(handler)

    assert await verifier.is_staked(WALLET) is True
    request = seen[0]
    assert request.url.path == "/api/v1/query/5112115/results"
    assert request.headers["X-DUNE-API-KEY"] == "dune-key"
    assert request.url.params["filters"] == f"subnet_id = {SUBNET} AND wallet_address = {WALLET}"
    assert request.url.params["columns"] == "net_staked_tokens"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("amount", "expected"),
    [(10, True), ("10.0", True), (9.99, False), (0, False)],
)
async def test_dune_threshold_is_inclusive(amount, expected) -> None:
    verifier = _verifier(_dune_rows(amount))

    assert await verifier.is_staked(WALLET) is expected


@pytest.mark.asyncio
async def test_dune_without_rows_is_not_staked() -> None:
    verifier = _verifier(_dune_rows())

    assert await verifier.staked_amount(WALLET) == Decimal(0)
    assert await verifier.is_staked(WALLET) is False


@pytest.mark.asyncio
async def test_indexer_amount_is_scaled_by_decimals() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["address"] == WALLET
        assert request.url.params["subnet"] == SUBNET
        return httpx.Response(200, json={"stakedAmount": str(12 * 10**18)})

    verifier = _verifier(handler, provider="indexer")

    assert await verifier.staked_amount(WALLET) == Decimal(12)
    assert await verifier.is_staked(WALLET) is True


@pytest.mark.asyncio
async def test_indexer_raw_units_below_threshold() -> None:
    # 10 ** 18 base units is one token, well below a 10 token minimum.
    verifier = _verifier(
        lambda request: httpx.Response(200, json={"stakedAmount": 10**18}),
        provider="indexer",
    )

    assert await verifier.is_staked(WALLET) is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(500, json={"error": "boom"}),
        lambda request: httpx.Response(200, text="not json"),
        lambda request: httpx.Response(200, json={"result": {}}),
        lambda request: httpx.Response(200, json={"result": {"rows": [{"net_staked_tokens": "lots"}]}}),
    ],
)
async def test_provider_failures_fail_closed(handler) -> None:
    verifier = _verifier(handler)

    with pytest.raises(StakeCheckUnavailable):
        await verifier.staked_amount(WALLET)
    assert await verifier.is_staked(WALLET) is False


@pytest.mark.asyncio
async def test_network_error_fails_closed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    verifier = _verifier(handler)

    assert await verifier.is_staked(WALLET) is False


@pytest.mark.asyncio
async def test_missing_dune_key_fails_closed() -> None:
    calls: list[httpx.Request] = []
    verifier = _verifier(lambda request: calls.append(request), dune_api_key=None)

    assert await verifier.is_staked(WALLET) is False
    assert calls == []


@pytest.mark.asyncio
async def test_allowlist_bypasses_lookup() -> None:
    calls: list[httpx.Request] = []
    verifier = _verifier(
        lambda request: calls.append(request),
        allowlist=frozenset({WALLET}),
    )

    assert await verifier.is_staked(WALLET.upper().replace("0X", "0x")) is True
    assert calls == []
    assert list(verifier.allowlist) == [WALLET]


def test_scale_base_units_rejects_fractions() -> None:
    assert scale_base_units("1500000", 6) == Decimal("1.5")
    with pytest.raises(ValueError):
        scale_base_units("1.5", 6)
    with pytest.raises(ValueError):
        scale_base_units(1.0, 6)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["abc", None, "Infinity", "-Infinity", "NaN", 1e30, True, {"value": 1}])
async def test_indexer_malformed_amounts_fail_closed(amount) -> None:
    verifier = _verifier(
        lambda request: httpx.Response(200, json={"stakedAmount": amount}),
        provider="indexer",
    )

    with pytest.raises(StakeCheckUnavailable):
        await verifier.staked_amount(WALLET)
    assert await verifier.is_staked(WALLET) is False


@pytest.mark.asyncio
async def test_indexer_missing_field_fails_closed() -> None:
    verifier = _verifier(
        lambda request: httpx.Response(200, json={"balance": "1"}),
        provider="indexer",
    )

    assert await verifier.is_staked(WALLET) is False


def test_scale_base_units_rejects_non_finite() -> None:
    with pytest.raises(ValueError):
        scale_base_units("Infinity", 18)
    with pytest.raises(ValueError):
        scale_base_units(None, 18)
