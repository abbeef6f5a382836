from __future__ import annotations

from collections.abc import Iterable

from proxy_monitor.errors import CrossGroupReorderError, ProviderNotFoundError
from proxy_monitor.logging_config import logger
from proxy_monitor.schemas import ProviderConfig
from proxy_monitor.services.remote_config_service import RemoteConfigService
from proxy_monitor.services.request_tracking import LatestRequestGate

_REFRESH_KEY = "providers"


def ordering_key(config: ProviderConfig) -> tuple[bool, int, int]:
    # 未分组的排在最前
    return (config.group_id is not None, config.group_id or 0, config.sort_order)


def order_providers(configs: Iterable[ProviderConfig]) -> list[ProviderConfig]:
    """
    按 (group_id, sort_order) 升序排列；相同键保持服务端返回顺序。
    """
    return sorted(configs, key=ordering_key)


class PriorityOrderingController:
    """
    维护供应商的自动切换优先级顺序。

    - 只允许组内重排，跨组在发起任何远端调用之前就被拒绝；
    - 成功后整体重新拉取列表，因为后端可能连带重编号多个兄弟节点；
    - 不做乐观更新：远端失败时列表保持原样。
    """

    def __init__(self, remote: RemoteConfigService, *, group_id: int | None = None) -> None:
        self._remote = remote
        self._group_id = group_id
        self._providers: list[ProviderConfig] = []
        self._gate = LatestRequestGate()

    @property
    def providers(self) -> list[ProviderConfig]:
        return list(self._providers)

    def load(self, configs: Iterable[ProviderConfig]) -> list[ProviderConfig]:
        self._providers = order_providers(configs)
        return self.providers

    async def refresh(self) -> list[ProviderConfig]:
        ticket = self._gate.issue(_REFRESH_KEY)
        configs = await self._remote.list_providers(self._group_id)
        if not self._gate.is_current(_REFRESH_KEY, ticket):
            logger.debug("Discarding stale provider list response")
            return self.providers
        return self.load(configs)

    def get(self, config_id: int) -> ProviderConfig:
        for config in self._providers:
            if config.id == config_id:
                return config
        raise ProviderNotFoundError(config_id)

    def group_members(self, group_id: int | None) -> list[ProviderConfig]:
        return [c for c in self._providers if c.group_id == group_id]

    def validate_reorder(self, config_id: int, new_sort_order: int) -> ProviderConfig:
        dragged = self.get(config_id)
        occupants = [
            c for c in self._providers if c.sort_order == new_sort_order and c.id != config_id
        ]
        if occupants and all(c.group_id != dragged.group_id for c in occupants):
            raise CrossGroupReorderError(config_id, occupants[0].group_id)
        return dragged

    def validate_move(self, dragged_id: int, target_id: int) -> tuple[ProviderConfig, ProviderConfig]:
        dragged = self.get(dragged_id)
        target = self.get(target_id)
        if dragged.group_id != target.group_id:
            raise CrossGroupReorderError(dragged_id, target.group_id)
        return dragged, target

    async def reorder(self, config_id: int, new_sort_order: int) -> list[ProviderConfig]:
        dragged = self.validate_reorder(config_id, new_sort_order)
        if dragged.sort_order == new_sort_order:
            return self.providers

        await self._remote.reorder_provider(config_id, new_sort_order)
        logger.info(
            "Reordered provider %s in group %s: %s -> %s",
            config_id,
            dragged.group_id,
            dragged.sort_order,
            new_sort_order,
        )
        return await self.refresh()

    async def move(self, dragged_id: int, target_id: int) -> list[ProviderConfig]:
        """
        拖拽语义：把 dragged 放到 target 当前所在的位置。
        """
        if dragged_id == target_id:
            return self.providers
        _, target = self.validate_move(dragged_id, target_id)
        return await self.reorder(dragged_id, target.sort_order)


__all__ = ["PriorityOrderingController", "order_providers", "ordering_key"]
