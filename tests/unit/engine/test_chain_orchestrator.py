"""
tests/unit/engine/test_chain_orchestrator.py
Inbound API: registry lookups, deletion, reconfiguration and optimization.
"""
import asyncio

import pytest

from chainforge.base.exceptions import ChainNotFound, ChainStateError, DuplicatePosition
from chainforge.chain.models import ChainStatus, HopStatus
from chainforge.engine.orchestrator import ChainOrchestrator


def test_create_get_list(orchestrator, specs):
    first = orchestrator.create_chain("one", [specs.proxy(0)], "example.com", 443)
    second = orchestrator.create_chain("two", [specs.tunnel(0)], "example.org", 22)

    assert orchestrator.get_chain(first).name == "one"
    assert [c.id for c in orchestrator.list_chains()] == [first, second]


def test_invalid_chain_is_not_registered(orchestrator, specs):
    with pytest.raises(DuplicatePosition):
        orchestrator.create_chain("bad", [specs.proxy(0), specs.proxy(0)], "example.com", 443)
    assert orchestrator.list_chains() == []


@pytest.mark.asyncio
async def test_unknown_chain_id_everywhere(orchestrator):
    with pytest.raises(ChainNotFound):
        orchestrator.get_chain("missing")
    with pytest.raises(ChainNotFound):
        await orchestrator.connect("missing")
    with pytest.raises(ChainNotFound):
        await orchestrator.disconnect("missing")
    with pytest.raises(ChainNotFound):
        await orchestrator.delete_chain("missing")
    with pytest.raises(ChainNotFound):
        await orchestrator.health("missing")
    with pytest.raises(ChainNotFound):
        orchestrator.optimize("missing")


@pytest.mark.asyncio
async def test_delete_disconnects_live_chain_first(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("live", [specs.proxy(0), specs.proxy(1)], "example.com", 443)
    await orchestrator.connect(chain_id)

    await orchestrator.delete_chain(chain_id)

    assert len(provider.handles("teardown")) == 2
    with pytest.raises(ChainNotFound):
        orchestrator.get_chain(chain_id)


@pytest.mark.asyncio
async def test_delete_idle_chain_skips_provider(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("idle", [specs.proxy(0)], "example.com", 443)
    await orchestrator.delete_chain(chain_id)
    assert provider.calls == []
    assert orchestrator.list_chains() == []


@pytest.mark.asyncio
async def test_optimize_returns_proposal_without_touching_live_chain(orchestrator, specs):
    chain_id = orchestrator.create_chain("mix", [specs.proxy(0), specs.tunnel(1)], "example.com", 443)
    await orchestrator.connect(chain_id)
    live = orchestrator.get_chain(chain_id)

    proposal = orchestrator.optimize(chain_id)

    assert orchestrator.get_chain(chain_id) == live
    assert proposal.status is ChainStatus.DISCONNECTED
    assert [h.kind.is_tunnel for h in proposal.hops] == [True, False]
    with pytest.raises(ChainStateError):
        await orchestrator.apply_optimization(chain_id)


@pytest.mark.asyncio
async def test_apply_optimization_on_idle_chain(orchestrator, specs):
    chain_id = orchestrator.create_chain("mix", [specs.proxy(0), specs.proxy(1), specs.tunnel(2)], "example.com", 443)
    tunnel_id = orchestrator.get_chain(chain_id).hop_at(2).id

    stored = await orchestrator.apply_optimization(chain_id)

    assert stored.hop_at(0).id == tunnel_id
    assert orchestrator.get_chain(chain_id) == stored


@pytest.mark.asyncio
async def test_reconfigure_only_when_idle(orchestrator, specs):
    chain_id = orchestrator.create_chain("re", [specs.proxy(0)], "example.com", 443)

    updated = await orchestrator.reconfigure(chain_id, [specs.tunnel(0), specs.proxy(1)])
    assert len(updated.hops) == 2
    assert updated.target_host == "example.com"

    await orchestrator.connect(chain_id)
    with pytest.raises(ChainStateError):
        await orchestrator.reconfigure(chain_id, [specs.proxy(0)])


@pytest.mark.asyncio
async def test_disconnect_cancels_inflight_connect(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("abort", [specs.proxy(0), specs.proxy(1)], "example.com", 443)
    provider.hanging.add(orchestrator.get_chain(chain_id).hop_at(1).id)

    connecting = asyncio.create_task(orchestrator.connect(chain_id))
    for _ in range(50):
        await asyncio.sleep(0)
        if len(provider.handles("establish")) == 2:
            break

    outcome = await orchestrator.disconnect(chain_id)
    connect_outcome = await connecting

    assert not connect_outcome.ok
    assert outcome.chain.status is ChainStatus.DISCONNECTED
    assert all(h.status is HopStatus.PENDING for h in outcome.chain.hops)


@pytest.mark.asyncio
async def test_aclose_disconnects_and_closes_provider(orchestrator, provider, specs):
    chain_id = orchestrator.create_chain("bye", [specs.proxy(0)], "example.com", 443)
    await orchestrator.connect(chain_id)

    await orchestrator.aclose()

    assert orchestrator.get_chain(chain_id).status is ChainStatus.DISCONNECTED
    assert provider.closed is True


def test_orchestrators_do_not_share_registries(provider, config, specs):
    first = ChainOrchestrator(provider, config=config)
    second = ChainOrchestrator(provider, config=config)
    first.create_chain("only-here", [specs.proxy(0)], "example.com", 443)
    assert second.list_chains() == []


@pytest.mark.asyncio
async def test_unknown_ids_leave_no_lock_behind(orchestrator, specs):
    for call in (
        lambda: orchestrator.connect("missing"),
        lambda: orchestrator.disconnect("missing"),
        lambda: orchestrator.reconfigure("missing", [specs.proxy(0)]),
        lambda: orchestrator.apply_optimization("missing"),
        lambda: orchestrator.delete_chain("missing"),
    ):
        with pytest.raises(ChainNotFound):
            await call()

    assert orchestrator._locks == {}
