import asyncio

import pytest

from deliveryline.tiers import (
    FALLBACK,
    PRIMARY,
    UNAVAILABLE,
    CollaboratorError,
    Tier,
    first_success,
)


async def _value(v):
    return v


async def _boom():
    raise CollaboratorError("down")


async def _slow():
    await asyncio.sleep(1)
    return "late"


@pytest.mark.asyncio
async def test_primary_result_is_tagged_primary():
    result = await first_success([
        Tier("a", lambda: _value("from a")),
        Tier("b", lambda: _value("from b")),
    ])
    assert result.kind == PRIMARY
    assert result.value == "from a"
    assert result.source == "a"
    assert result.available


@pytest.mark.asyncio
async def test_error_moves_to_fallback():
    result = await first_success([
        Tier("a", _boom),
        Tier("b", lambda: _value("from b")),
    ])
    assert result.kind == FALLBACK
    assert result.value == "from b"
    assert result.source == "b"


@pytest.mark.asyncio
async def test_timeout_moves_to_fallback():
    result = await first_success([
        Tier("a", _slow, timeout=0.01),
        Tier("b", lambda: _value("from b")),
    ])
    assert result.kind == FALLBACK
    assert result.value == "from b"


@pytest.mark.asyncio
async def test_rejected_value_moves_to_fallback():
    result = await first_success(
        [Tier("a", lambda: _value(0.2)), Tier("b", lambda: _value(0.9))],
        accept=lambda v: v >= 0.5,
    )
    assert result.value == 0.9
    assert result.kind == FALLBACK


@pytest.mark.asyncio
async def test_disabled_tier_is_not_attempted():
    calls = []

    async def attempt():
        calls.append("a")
        return "from a"

    result = await first_success([
        Tier("a", attempt, enabled=False),
        Tier("b", lambda: _value("from b")),
    ])
    assert calls == []
    assert result.source == "b"
    assert result.kind == FALLBACK


@pytest.mark.asyncio
async def test_all_failing_is_unavailable():
    result = await first_success([Tier("a", _boom), Tier("b", _boom)])
    assert result.kind == UNAVAILABLE
    assert result.value is None
    assert not result.available


@pytest.mark.asyncio
async def test_unexpected_exception_is_contained():
    async def bad():
        raise KeyError("x")

    result = await first_success([Tier("a", bad)])
    assert result.kind == UNAVAILABLE
