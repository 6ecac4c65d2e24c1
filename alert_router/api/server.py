"""Push API: accepts alert events from collectors and exposes router state."""

from __future__ import annotations

import logging
from typing import Any, Callable, List

from fastapi import APIRouter, FastAPI
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from alert_router import __version__
from alert_router.alerts.alert_store import AlertStore
from alert_router.alerts.dispatcher import Dispatcher
from alert_router.alerts.inhibit import Inhibitor
from alert_router.alerts.models import Alert, AlertState
from alert_router.api.models import PostableAlert
from alert_router.config.routing import RoutingConfig
from alert_router.errors import InvalidAlertError
from alert_router.exporters.prometheus_exporter import RouterMetrics
from alert_router.utils.helpers import format_duration, utcnow

logger = logging.getLogger(__name__)


def _validation_message(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return "; ".join(parts)


def ingest_alerts(events: List[Any], dispatcher: Dispatcher, resolve_timeout: float,
                  metrics: RouterMetrics, clock: Callable = utcnow) -> dict:
    """Validate and ingest a batch of events; malformed ones are rejected and counted."""
    now = clock()
    accepted = []
    rejected = []

    for index, event in enumerate(events):
        try:
            postable = PostableAlert.model_validate(event)
            alert = Alert.from_event(postable.to_event(), resolve_timeout, now)
        except ValidationError as e:
            message = _validation_message(e)
        except InvalidAlertError as e:
            message = str(e)
        else:
            dispatcher.receive(alert)
            accepted.append(alert.fingerprint)
            continue

        metrics.alerts_invalid.inc()
        rejected.append({"index": index, "error": message})
        logger.warning("Rejected alert event #%d: %s", index, message)

    if accepted or rejected:
        logger.info("Received %d alert events (%d accepted, %d rejected)",
                    len(events), len(accepted), len(rejected))

    return {"accepted": accepted, "rejected": rejected}


def create_app(routing: RoutingConfig, dispatcher: Dispatcher, store: AlertStore,
               inhibitor: Inhibitor, metrics: RouterMetrics, clock: Callable = utcnow) -> FastAPI:
    """Build the FastAPI application around the router components."""
    started_at = clock()
    router = APIRouter(prefix="/api/v2", tags=["alerts"])

    @router.post("/alerts")
    def post_alerts(events: List[Any]):
        """Receive alert events from one or more collectors."""
        result = ingest_alerts(events, dispatcher, routing.resolve_timeout, metrics, clock)
        if events and not result["accepted"]:
            return JSONResponse(status_code=400, content=result)
        return result

    @router.get("/alerts")
    def get_alerts(active: bool = True, inhibited: bool = True, resolved: bool = False):
        """List current alerts with their suppression status."""
        now = clock()
        result = []
        for alert in sorted(store.list(), key=lambda a: a.starts_at):
            data = alert.to_dict(now)
            if alert.resolved(now):
                if not resolved:
                    continue
                data["state"] = AlertState.RESOLVED
                data["inhibitedBy"] = []
            else:
                source = inhibitor.inhibited_by(alert, now)
                if source is not None:
                    if not inhibited:
                        continue
                    data["state"] = "suppressed"
                    data["inhibitedBy"] = [source.fingerprint]
                else:
                    if not active:
                        continue
                    data["state"] = "active"
                    data["inhibitedBy"] = []
            data["receivers"] = [r.receiver for r in routing.route.match(alert.labels)]
            result.append(data)
        return result

    @router.get("/alerts/groups")
    def get_groups():
        """List aggregation groups and their pending alerts."""
        return dispatcher.groups()

    @router.get("/status")
    def get_status():
        uptime = (clock() - started_at).total_seconds()
        return {
            "version": __version__,
            "uptime_seconds": round(uptime, 2),
            "resolve_timeout": format_duration(routing.resolve_timeout),
            "alerts": store.counts(clock()),
            "groups": dispatcher.group_count(),
            "config": routing.to_dict(),
        }

    app = FastAPI(
        title="Alert Router",
        description="Groups, inhibits and routes alert notifications",
        version=__version__,
    )
    app.include_router(router)

    @app.get("/-/healthy", include_in_schema=False)
    def healthy():
        return {"status": "healthy"}

    @app.get("/-/ready", include_in_schema=False)
    def ready():
        return {"status": "ready"}

    return app
