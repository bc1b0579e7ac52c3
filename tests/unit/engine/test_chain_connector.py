"""
tests/unit/engine/test_chain_connector.py
Establishment order, endpoint propagation, rollback and the resting states
left behind by connect().
"""
import asyncio

import pytest

from chainforge.base.exceptions import ChainStateError, HopError, HopErrorReason
from chainforge.chain.models import ChainStatus, Endpoint, HopStatus


def _positions(chain, handles):
    by_id = {h.id: h.position for h in chain.hops}
    return [by_id[handle] for handle in handles]


@pytest.mark.asyncio
async def test_two_proxy_chain_propagates_local_endpoint(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("pair", [specs.proxy(0), specs.proxy(1)], "example.com", 443)
    chain = orchestrator.get_chain(chain_id)
    provider.endpoint_for(chain.hop_at(0).id, Endpoint("127.0.0.1", 9001))
    provider.endpoint_for(chain.hop_at(1).id, Endpoint("127.0.0.1", 9555))

    outcome = await orchestrator.connect(chain_id)

    assert outcome.ok
    assert outcome.status is ChainStatus.CONNECTED
    # Position 0 dials the real target, position 1 dials position 0's listener
    assert provider.dial_targets() == [Endpoint("example.com", 443), Endpoint("127.0.0.1", 9001)]
    stored = orchestrator.get_chain(chain_id)
    assert stored.status is ChainStatus.CONNECTED
    assert stored.final_local_endpoint == Endpoint("127.0.0.1", 9555)
    assert stored.connected_at is not None
    assert [h.status for h in stored.hops] == [HopStatus.CONNECTED, HopStatus.CONNECTED]


@pytest.mark.asyncio
async def test_establish_calls_strictly_ascend(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain(
        "mixed",
        [specs.proxy(7), specs.tunnel(0), specs.proxy(3), specs.tunnel(1, subtype="openvpn")],
        "example.com",
        22,
    )
    await orchestrator.connect(chain_id)

    chain = orchestrator.get_chain(chain_id)
    assert _positions(chain, provider.handles("establish")) == [0, 1, 3, 7]
    assert provider.timeouts == [0.5] * 4


@pytest.mark.asyncio
async def test_dial_timeout_rolls_back_earlier_hops(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("three", [specs.proxy(0), specs.proxy(1), specs.proxy(2)], "example.com", 443)
    chain = orchestrator.get_chain(chain_id)
    provider.establish_errors[chain.hop_at(1).id] = HopError(HopErrorReason.DIAL_TIMEOUT, "relay did not answer")

    outcome = await orchestrator.connect(chain_id)

    assert not outcome.ok
    assert outcome.status is ChainStatus.PARTIAL
    assert outcome.failed_position == 1
    assert outcome.error.reason is HopErrorReason.DIAL_TIMEOUT

    stored = orchestrator.get_chain(chain_id)
    assert stored.status is ChainStatus.ERROR
    assert "dial-timeout" in stored.last_error
    assert stored.hop_at(0).status is HopStatus.PENDING
    assert stored.hop_at(0).local_endpoint is None
    assert stored.hop_at(1).status is HopStatus.FAILED
    assert "dial-timeout" in stored.hop_at(1).last_error
    assert stored.hop_at(2).status is HopStatus.PENDING
    assert stored.final_local_endpoint is None

    # Position 2 was never attempted, position 0 was torn down
    assert _positions(stored, provider.handles("establish")) == [0, 1]
    assert _positions(stored, provider.handles("teardown")) == [0]


@pytest.mark.asyncio
async def test_rollback_tears_down_in_descending_order(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("four", [specs.proxy(p) for p in range(4)], "example.com", 443)
    chain = orchestrator.get_chain(chain_id)
    provider.establish_errors[chain.hop_at(3).id] = HopError(HopErrorReason.AUTH_REJECTED, "bad credentials")

    outcome = await orchestrator.connect(chain_id)

    assert outcome.failed_position == 3
    assert _positions(chain, provider.handles("teardown")) == [2, 1, 0]
    stored = orchestrator.get_chain(chain_id)
    assert not [h for h in stored.hops if h.status is HopStatus.CONNECTED]


@pytest.mark.asyncio
async def test_hung_establish_becomes_dial_timeout(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("slow", [specs.proxy(0), specs.tunnel(1)], "example.com", 443)
    chain = orchestrator.get_chain(chain_id)
    provider.hanging.add(chain.hop_at(1).id)

    outcome = await orchestrator.connect(chain_id)

    assert outcome.failed_position == 1
    assert outcome.error.reason is HopErrorReason.DIAL_TIMEOUT
    assert orchestrator.get_chain(chain_id).status is ChainStatus.ERROR
    assert _positions(chain, provider.handles("teardown")) == [0]


@pytest.mark.asyncio
async def test_unexpected_provider_exception_is_wrapped(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("boom", [specs.proxy(0)], "example.com", 443)
    chain = orchestrator.get_chain(chain_id)
    provider.establish_errors[chain.hop_at(0).id] = RuntimeError("socket exploded")

    outcome = await orchestrator.connect(chain_id)

    assert outcome.error.reason is HopErrorReason.PROVIDER_UNAVAILABLE
    last_error = orchestrator.get_chain(chain_id).last_error
    assert "establishing hop 0: socket exploded" in last_error
    assert "RuntimeError" in last_error
    assert outcome.error.__cause__ is provider.establish_errors[chain.hop_at(0).id]


@pytest.mark.asyncio
async def test_cancel_aborts_inflight_hop_and_rolls_back(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("cancel", [specs.proxy(0), specs.proxy(1), specs.proxy(2)], "example.com", 443)
    chain = orchestrator.get_chain(chain_id)
    provider.hanging.add(chain.hop_at(1).id)

    task = asyncio.create_task(orchestrator.connect(chain_id))
    for _ in range(50):
        await asyncio.sleep(0)
        if len(provider.handles("establish")) == 2:
            break
    assert orchestrator.cancel(chain_id) is True

    outcome = await task

    assert not outcome.ok
    assert outcome.failed_position == 1
    assert outcome.error.reason is HopErrorReason.CANCELLED
    stored = orchestrator.get_chain(chain_id)
    assert stored.status is ChainStatus.ERROR
    assert stored.hop_at(0).status is HopStatus.PENDING
    assert stored.hop_at(1).status is HopStatus.FAILED
    assert _positions(chain, provider.handles("teardown")) == [0]
    assert orchestrator.cancel(chain_id) is False


@pytest.mark.asyncio
async def test_cancel_during_rollback_still_releases_every_hop(orchestrator, provider, specs, monkeypatch):
    chain_id = orchestrator.create_chain("rollback", [specs.proxy(p) for p in range(3)], "example.com", 443)
    chain = orchestrator.get_chain(chain_id)
    failing = chain.hop_at(2).id
    slow = chain.hop_at(1).id
    provider.establish_errors[failing] = HopError(HopErrorReason.UNREACHABLE, "no route")
    original = provider.teardown

    async def slow_teardown(kind, handle):
        await original(kind, handle)
        if handle == slow:
            await asyncio.sleep(0.2)

    monkeypatch.setattr(provider, "teardown", slow_teardown)

    task = asyncio.create_task(orchestrator.connect(chain_id))
    for _ in range(100):
        await asyncio.sleep(0)
        if slow in provider.handles("teardown"):
            break
    assert orchestrator.cancel(chain_id) is True

    outcome = await task

    assert not outcome.ok
    stored = orchestrator.get_chain(chain_id)
    assert stored.status is ChainStatus.ERROR
    assert not [h for h in stored.hops if h.status is HopStatus.CONNECTED]
    # The interrupted teardown of position 1 did not stop position 0 from being released
    assert _positions(chain, provider.handles("teardown")) == [1, 0]

    del provider.establish_errors[failing]
    monkeypatch.setattr(provider, "teardown", original)
    assert (await orchestrator.connect(chain_id)).ok


@pytest.mark.asyncio
async def test_no_partial_resting_state(orchestrator, provider, specs):
    ok_id = orchestrator.create_chain("ok", [specs.proxy(0), specs.proxy(1)], "example.com", 443)
    bad_id = orchestrator.create_chain("bad", [specs.proxy(0), specs.proxy(1)], "example.com", 443)
    provider.establish_errors[orchestrator.get_chain(bad_id).hop_at(0).id] = HopError(HopErrorReason.UNREACHABLE, "no route")

    await orchestrator.connect(ok_id)
    await orchestrator.connect(bad_id)

    resting = {ChainStatus.CONNECTED, ChainStatus.ERROR, ChainStatus.DISCONNECTED}
    for chain in orchestrator.list_chains():
        assert chain.status in resting
        assert not [h for h in chain.hops if h.status in (HopStatus.CONNECTING, HopStatus.DISCONNECTING)]


@pytest.mark.asyncio
async def test_never_more_than_one_hop_connecting(orchestrator, registry, specs):
    seen = []
    registry.chain_changed.connect(
        lambda chain: seen.append(sum(1 for h in chain.hops if h.status is HopStatus.CONNECTING))
    )
    chain_id = orchestrator.create_chain("seq", [specs.proxy(p) for p in range(5)], "example.com", 443)

    await orchestrator.connect(chain_id)

    assert seen and max(seen) == 1


@pytest.mark.asyncio
async def test_connect_is_noop_when_connected(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("again", [specs.proxy(0)], "example.com", 443)
    await orchestrator.connect(chain_id)
    calls = len(provider.calls)

    outcome = await orchestrator.connect(chain_id)

    assert outcome.ok
    assert len(provider.calls) == calls


@pytest.mark.asyncio
async def test_reconnect_after_error_resets_failed_hops(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("retry", [specs.proxy(0), specs.proxy(1)], "example.com", 443)
    failing = orchestrator.get_chain(chain_id).hop_at(1).id
    provider.establish_errors[failing] = HopError(HopErrorReason.UNREACHABLE, "down")
    assert not (await orchestrator.connect(chain_id)).ok

    del provider.establish_errors[failing]
    outcome = await orchestrator.connect(chain_id)

    assert outcome.ok
    stored = orchestrator.get_chain(chain_id)
    assert stored.last_error is None
    assert all(h.status is HopStatus.CONNECTED for h in stored.hops)


@pytest.mark.asyncio
async def test_concurrent_connect_of_same_chain_rejected(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("busy", [specs.proxy(0)], "example.com", 443)
    provider.hanging.add(orchestrator.get_chain(chain_id).hop_at(0).id)

    first = asyncio.create_task(orchestrator.connect(chain_id))
    await asyncio.sleep(0)
    with pytest.raises(ChainStateError):
        await orchestrator.connect(chain_id)

    outcome = await first
    assert outcome.error.reason is HopErrorReason.DIAL_TIMEOUT


@pytest.mark.asyncio
async def test_unrelated_chains_connect_concurrently(orchestrator, provider, specs):
    slow_id = orchestrator.create_chain("slow", [specs.proxy(0)], "example.com", 443)
    fast_id = orchestrator.create_chain("fast", [specs.proxy(0)], "example.org", 443)
    provider.hanging.add(orchestrator.get_chain(slow_id).hop_at(0).id)

    slow = asyncio.create_task(orchestrator.connect(slow_id))
    await asyncio.sleep(0)
    fast = await asyncio.wait_for(orchestrator.connect(fast_id), timeout=0.3)

    assert fast.ok
    assert not slow.done()
    await slow
