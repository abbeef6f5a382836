from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from proxy_monitor.deps import get_notification_sink, get_orchestrator
from proxy_monitor.errors import bad_request, conflict, http_error, not_found, service_unavailable
from proxy_monitor.schemas import (
    BalanceInfo,
    CommandOutcome,
    DashboardView,
    HealthCheckIntervalRequest,
    HealthCheckSchedulerStatus,
    HealthGridRow,
    Notification,
    ReorderRequest,
    StatsSortKey,
    SwitchUiState,
    TestResult,
    ToggleRequest,
)
from proxy_monitor.services.dashboard_orchestrator import DashboardOrchestrator
from proxy_monitor.services.notification_sink import InMemoryNotificationSink

router = APIRouter(prefix="/monitor", tags=["monitor"])


def _ensure_ok(outcome: CommandOutcome) -> CommandOutcome:
    if outcome.ok:
        return outcome
    message = outcome.message or "Operation failed"
    if outcome.error == "validation":
        raise bad_request(message)
    if outcome.error == "in_progress":
        raise conflict(message)
    if outcome.error == "storage":
        raise service_unavailable(message)
    raise http_error(status.HTTP_502_BAD_GATEWAY, error="remote_error", message=message)


@router.get("/dashboard", response_model=DashboardView)
async def get_dashboard(
    group_id: int | None = Query(default=None),
    sort_by: StatsSortKey | None = Query(default=None),
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> DashboardView:
    return orchestrator.view(group_id=group_id, sort_by=sort_by)


@router.get("/health-grid", response_model=list[HealthGridRow])
async def get_health_grid(
    group_id: int | None = Query(default=None),
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> list[HealthGridRow]:
    return orchestrator.view(group_id=group_id).health_grid


@router.get("/switch-state", response_model=SwitchUiState)
async def get_switch_state(
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> SwitchUiState:
    return orchestrator.switch_state


@router.post("/refresh", status_code=status.HTTP_202_ACCEPTED)
async def request_refresh(
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> dict[str, bool]:
    orchestrator.request_refresh()
    return {"scheduled": True}


@router.get("/notifications", response_model=list[Notification])
async def list_notifications(
    sink: InMemoryNotificationSink | None = Depends(get_notification_sink),
) -> list[Notification]:
    return sink.snapshot() if sink is not None else []


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_notification(
    notification_id: str,
    sink: InMemoryNotificationSink | None = Depends(get_notification_sink),
) -> Response:
    if sink is not None:
        sink.dismiss(notification_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/providers/test-all", response_model=CommandOutcome)
async def test_all_providers(
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> CommandOutcome:
    return _ensure_ok(await orchestrator.test_all())


@router.post("/providers/reorder", response_model=CommandOutcome)
async def reorder_provider(
    body: ReorderRequest,
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> CommandOutcome:
    outcome = await orchestrator.reorder(
        body.config_id,
        target_config_id=body.target_config_id,
        new_sort_order=body.new_sort_order,
    )
    if not outcome.ok and outcome.error == "validation":
        raise conflict(outcome.message or "Providers can only be reordered within the same group")
    return _ensure_ok(outcome)


@router.post("/providers/{config_id}/test", response_model=TestResult)
async def test_provider(
    config_id: int,
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> TestResult:
    if orchestrator.is_testing(config_id):
        raise conflict(f"test_provider already in progress for {config_id}")
    result = await orchestrator.test_provider(config_id)
    if result is None:
        raise http_error(
            status.HTTP_502_BAD_GATEWAY,
            error="remote_error",
            message=f"Connectivity test failed for provider {config_id}",
        )
    return result


@router.post("/providers/{config_id}/balance", response_model=BalanceInfo)
async def query_balance(
    config_id: int,
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> BalanceInfo:
    if orchestrator.is_querying_balance(config_id):
        raise conflict(f"query_balance already in progress for {config_id}")
    info = await orchestrator.query_balance(config_id)
    if info is None:
        raise http_error(
            status.HTTP_502_BAD_GATEWAY,
            error="remote_error",
            message=f"Balance query failed for provider {config_id}",
        )
    return info


@router.post("/providers/{config_id}/switch", response_model=CommandOutcome)
async def switch_provider(
    config_id: int,
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> CommandOutcome:
    return _ensure_ok(await orchestrator.switch_provider(config_id))


@router.post("/groups/{group_id}/auto-switch", response_model=CommandOutcome)
async def toggle_auto_switch(
    group_id: int,
    body: ToggleRequest,
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> CommandOutcome:
    view = orchestrator.view()
    if view.groups and all(g.id != group_id for g in view.groups):
        raise not_found(f"Group {group_id} not found")
    return _ensure_ok(await orchestrator.toggle_auto_switch(group_id, body.enabled))


@router.put("/preferences/monitor-auto-refresh", response_model=CommandOutcome)
async def set_monitor_auto_refresh(
    body: ToggleRequest,
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> CommandOutcome:
    return _ensure_ok(await orchestrator.set_monitor_auto_refresh(body.enabled))


@router.put("/preferences/dev-log-auto-refresh", response_model=CommandOutcome)
async def set_dev_log_auto_refresh(
    body: ToggleRequest,
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> CommandOutcome:
    return _ensure_ok(await orchestrator.set_dev_log_auto_refresh(body.enabled))


@router.get("/health-check/status", response_model=HealthCheckSchedulerStatus)
async def get_health_check_status(
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> HealthCheckSchedulerStatus:
    return await orchestrator.sync_health_check_status()


@router.post("/health-check/toggle", response_model=CommandOutcome)
async def toggle_health_check(
    body: ToggleRequest,
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> CommandOutcome:
    return _ensure_ok(await orchestrator.set_health_check_enabled(body.enabled))


@router.put("/health-check/interval", response_model=CommandOutcome)
async def set_health_check_interval(
    body: HealthCheckIntervalRequest,
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> CommandOutcome:
    return _ensure_ok(await orchestrator.set_health_check_interval(body.interval_secs))


@router.post("/health-check/run", response_model=CommandOutcome)
async def run_health_check_now(
    orchestrator: DashboardOrchestrator = Depends(get_orchestrator),
) -> CommandOutcome:
    return _ensure_ok(await orchestrator.run_health_check_now())


__all__ = ["router"]
