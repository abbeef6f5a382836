from __future__ import annotations

import pytest

from proxy_monitor.errors import CrossGroupReorderError, ProviderNotFoundError, RemoteServiceError
from proxy_monitor.services.priority_ordering import PriorityOrderingController, order_providers
from tests.utils import FakeRemoteConfigService, make_config


def _remote_with_group() -> FakeRemoteConfigService:
    remote = FakeRemoteConfigService()
    remote.providers = [
        make_config(1, group_id=1, sort_order=10, name="A"),
        make_config(2, group_id=1, sort_order=20, name="B"),
        make_config(3, group_id=1, sort_order=30, name="C"),
        make_config(4, group_id=2, sort_order=5, name="X"),
    ]
    return remote


def test_order_providers_groups_then_sort_order_stable():
    configs = [
        make_config(1, group_id=2, sort_order=1),
        make_config(2, group_id=1, sort_order=5),
        make_config(3, group_id=None, sort_order=9),
        make_config(4, group_id=1, sort_order=5),
        make_config(5, group_id=1, sort_order=0),
    ]
    assert [c.id for c in order_providers(configs)] == [3, 5, 2, 4, 1]


@pytest.mark.asyncio
async def test_drag_within_group_renumbers_from_server():
    remote = _remote_with_group()
    controller = PriorityOrderingController(remote)
    await controller.refresh()

    providers = await controller.move(3, 1)

    assert remote.calls_to("reorder_provider") == [(3, 10)]
    group_one = [(c.name, c.sort_order) for c in providers if c.group_id == 1]
    assert group_one == [("C", 10), ("A", 20), ("B", 30)]
    assert remote.count("list_providers") == 2


@pytest.mark.asyncio
async def test_cross_group_move_rejected_before_remote_call():
    remote = _remote_with_group()
    controller = PriorityOrderingController(remote)
    await controller.refresh()
    before = controller.providers

    with pytest.raises(CrossGroupReorderError) as exc_info:
        await controller.move(1, 4)

    assert str(exc_info.value) == "Providers can only be reordered within the same group"
    assert remote.count("reorder_provider") == 0
    assert controller.providers == before


@pytest.mark.asyncio
async def test_reorder_to_slot_held_by_other_group_rejected():
    remote = _remote_with_group()
    controller = PriorityOrderingController(remote)
    await controller.refresh()

    with pytest.raises(CrossGroupReorderError):
        await controller.reorder(2, 5)
    assert remote.count("reorder_provider") == 0


@pytest.mark.asyncio
async def test_remote_failure_keeps_order_unchanged():
    remote = _remote_with_group()
    controller = PriorityOrderingController(remote)
    await controller.refresh()
    before = controller.providers
    remote.failures["reorder_provider"] = RemoteServiceError("reorder_provider", "HTTP 500")

    with pytest.raises(RemoteServiceError):
        await controller.move(3, 1)

    assert controller.providers == before
    assert remote.count("list_providers") == 1


@pytest.mark.asyncio
async def test_noop_moves_do_not_call_remote():
    remote = _remote_with_group()
    controller = PriorityOrderingController(remote)
    await controller.refresh()

    await controller.move(2, 2)
    await controller.reorder(2, 20)

    assert remote.count("reorder_provider") == 0


def test_unknown_provider():
    controller = PriorityOrderingController(FakeRemoteConfigService())
    controller.load([make_config(1)])
    with pytest.raises(ProviderNotFoundError):
        controller.get(99)
    assert [c.id for c in controller.group_members(1)] == [1]
