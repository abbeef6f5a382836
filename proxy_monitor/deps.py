from fastapi import Request

from .errors import service_unavailable
from .services.dashboard_orchestrator import DashboardOrchestrator
from .services.notification_sink import InMemoryNotificationSink


def get_orchestrator(request: Request) -> DashboardOrchestrator:
    """
    FastAPI dependency returning the orchestrator mounted by the app lifespan.

    Tests usually pass their own orchestrator to `create_app()` instead of
    overriding this dependency.
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise service_unavailable("Monitor service is not started")
    return orchestrator


def get_notification_sink(request: Request) -> InMemoryNotificationSink | None:
    sink = getattr(request.app.state, "notification_sink", None)
    return sink if isinstance(sink, InMemoryNotificationSink) else None
