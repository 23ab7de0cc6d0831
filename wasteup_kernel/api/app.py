"""
Waste Up Kernel API — FastAPI endpoints.

Exposes the kernel to the dashboards:
- User directory
- Pickup request lifecycle
- Notifications
- Insights (tips, route advice, stats)
- Service zones
- Reminders and runtime configuration

The caller's identity arrives in X-Actor-Id / X-Actor-Role / X-Actor-Zone
headers set by the session layer, and is trusted as given.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import Body, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from wasteup_kernel.catalog.seed import seed_demo_data
from wasteup_kernel.catalog.zones import ZoneCatalog, ZoneCreate
from wasteup_kernel.directory.service import DirectoryService
from wasteup_kernel.errors import PortalError
from wasteup_kernel.insights.advice import InsightService
from wasteup_kernel.lifecycle.engine import RequestLifecycleEngine
from wasteup_kernel.log import configure_logging
from wasteup_kernel.models.config import PortalConfig, RuntimeConfigUpdate
from wasteup_kernel.models.user import ActorContext, UserCreate, UserRole, UserUpdate
from wasteup_kernel.notifications.dispatcher import NotificationDispatcher
from wasteup_kernel.notifications.mailer import PickupMailer
from wasteup_kernel.store.records import RecordStore, create_store
from wasteup_kernel.textgen.generator import (
    TextGenerator,
    TimeBoundGenerator,
    create_generator,
)

logger = logging.getLogger(__name__)


# --- Request/Response Models ---

class StatusChangeRequest(BaseModel):
    status: str


class AssignRequest(BaseModel):
    operator_id: str


class AvailabilityRequest(BaseModel):
    available: bool


class RouteAdviceRequest(BaseModel):
    locations: List[str]


# --- Application Factory ---

def create_app(
    config: Optional[PortalConfig] = None,
    store: Optional[RecordStore] = None,
    text_generator: Optional[TextGenerator] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    config = config or PortalConfig()
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Drain queued notifications and stop the worker pools
        app.state.dispatcher.shutdown()

    app = FastAPI(
        title="Waste Up Kernel API",
        description="Pickup request lifecycle, assignment and notifications",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Initialize components
    rs = store or create_store(config.store_backend, config.db_path)
    generator = text_generator or create_generator(
        api_key=config.gemini_api_key,
        model=config.gemini_model,
        endpoint=config.gemini_endpoint,
        timeout_seconds=config.text_generation_timeout_seconds,
        brand_name=config.brand_name,
    )
    bounded = TimeBoundGenerator(generator, config.text_generation_timeout_seconds)
    directory = DirectoryService(rs)
    dispatcher = NotificationDispatcher(
        rs,
        text_generator=bounded,
        brand_name=config.brand_name,
        mode=config.notification_mode,
        workers=config.notification_workers,
    )
    mailer = PickupMailer(
        directory,
        host=config.smtp_host,
        port=config.smtp_port,
        username=config.smtp_username,
        password=config.smtp_password,
        use_tls=config.smtp_use_tls,
        sender=config.mail_sender,
    )
    dispatcher.subscribe(mailer)
    engine = RequestLifecycleEngine(rs, directory, dispatcher)
    insights = InsightService(rs, bounded)
    zones = ZoneCatalog(rs)

    if config.seed_demo_data:
        seed_demo_data(directory)

    # Store components on app state for access in endpoints
    app.state.config = config
    app.state.store = rs
    app.state.directory = directory
    app.state.dispatcher = dispatcher
    app.state.mailer = mailer
    app.state.engine = engine
    app.state.insights = insights
    app.state.zones = zones

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    def actor_from_headers(
        actor_id: str, role: UserRole, zone: Optional[str]
    ) -> ActorContext:
        return ActorContext(id=actor_id, role=role, zone=zone)

    # === USERS ===

    @app.post("/users")
    def register_user(req: UserCreate):
        """Register a resident, operator or admin."""
        return directory.register_user(req).model_dump(mode="json")

    @app.get("/users")
    def list_users(role: Optional[UserRole] = None):
        return [u.model_dump(mode="json") for u in directory.list_users(role)]

    @app.get("/users/{user_id}")
    def get_user(user_id: str):
        return directory.get_user(user_id).model_dump(mode="json")

    @app.patch("/users/{user_id}")
    def update_user(user_id: str, req: UserUpdate):
        """Profile edit."""
        return directory.update_profile(user_id, req).model_dump(mode="json")

    @app.put("/users/{user_id}/availability")
    def set_availability(user_id: str, req: AvailabilityRequest):
        """Operator toggles availability for new assignments."""
        return directory.set_availability(user_id, req.available).model_dump(mode="json")

    @app.get("/activity")
    def get_activity(user_id: Optional[str] = None):
        """Activity log, newest first."""
        return [e.model_dump(mode="json") for e in directory.activity_for(user_id)]

    # === PICKUP REQUESTS ===

    @app.post("/requests")
    def create_request(
        payload: dict = Body(...),
        x_actor_id: str = Header(...),
        x_actor_role: UserRole = Header(...),
        x_actor_zone: Optional[str] = Header(None),
    ):
        """Create a pickup request (resident) or a manual entry (operator)."""
        actor = actor_from_headers(x_actor_id, x_actor_role, x_actor_zone)
        return engine.create_request(actor, payload).model_dump(mode="json")

    @app.get("/requests")
    def list_requests(actor: Optional[str] = None, role: Optional[UserRole] = None):
        """Requests visible to an actor."""
        return [r.model_dump(mode="json") for r in engine.list_requests(actor, role)]

    @app.get("/requests/{request_id}")
    def get_request(request_id: str):
        return engine.get_request(request_id).model_dump(mode="json")

    @app.patch("/requests/{request_id}/status")
    def update_status(
        request_id: str,
        req: StatusChangeRequest,
        x_actor_id: str = Header(...),
    ):
        """Move a request along the lifecycle."""
        return engine.update_status(request_id, x_actor_id, req.status).model_dump(mode="json")

    @app.post("/requests/{request_id}/assign")
    def assign_operator(
        request_id: str,
        req: AssignRequest,
        x_actor_id: str = Header(...),
    ):
        """Manually assign an operator to an unassigned request."""
        return engine.assign_operator(
            request_id, x_actor_id, req.operator_id
        ).model_dump(mode="json")

    # === NOTIFICATIONS ===

    @app.get("/notifications/{user_id}")
    def get_notifications(user_id: str):
        return [n.model_dump(mode="json") for n in dispatcher.get_notifications(user_id)]

    @app.post("/notifications/{user_id}/read")
    def mark_notifications_read(user_id: str):
        return {"user_id": user_id, "marked_read": dispatcher.mark_all_read(user_id)}

    @app.delete("/notifications/{user_id}")
    def clear_notifications(user_id: str):
        """Remove every notification for a recipient."""
        return {"user_id": user_id, "cleared": dispatcher.clear(user_id)}

    # === INSIGHTS ===

    @app.get("/insights/tips")
    def get_waste_tip(waste_type: str):
        return insights.waste_tip(waste_type).model_dump(mode="json")

    @app.post("/insights/route")
    def get_route_advice(req: RouteAdviceRequest):
        return insights.route_advice(req.locations).model_dump(mode="json")

    @app.get("/insights/operators/{operator_id}/stats")
    def get_operator_stats(operator_id: str):
        return insights.operator_stats(operator_id).model_dump(mode="json")

    # === ZONES ===

    @app.get("/zones")
    def get_zones():
        """Catalogue zones with flood risk and open request counts."""
        catalogue = zones.list_zones()
        summary = {s.zone: s for s in insights.zone_summary(catalogue)}
        return [
            {
                **z.model_dump(mode="json"),
                "open_requests": summary[z.name].open_requests,
            }
            for z in catalogue
        ]

    @app.post("/zones", status_code=201)
    def create_zone(
        req: ZoneCreate,
        x_actor_id: str = Header(...),
        x_actor_role: UserRole = Header(...),
    ):
        """Add a service zone (admins only)."""
        actor = actor_from_headers(x_actor_id, x_actor_role, None)
        return zones.create_zone(actor, req).model_dump(mode="json")

    # === REMINDERS ===

    @app.post("/reminders")
    def send_reminders(on_date: Optional[date] = None):
        """Remind residents of pickups scheduled for a date (default today)."""
        reminded = engine.send_reminders(on_date)
        return {"sent": len(reminded), "request_ids": [r.id for r in reminded]}

    # === CONFIG ===

    @app.get("/config")
    def get_config():
        data = app.state.config.model_dump()
        for secret in ("gemini_api_key", "smtp_password"):
            data[secret] = "***" if data[secret] else None
        return data

    @app.put("/config")
    def update_config(req: RuntimeConfigUpdate):
        """Change runtime-safe settings."""
        changes = req.model_dump(exclude_unset=True, exclude_none=True)
        app.state.config = app.state.config.model_copy(update=changes)
        if "text_generation_timeout_seconds" in changes:
            bounded.timeout_seconds = changes["text_generation_timeout_seconds"]
        if "brand_name" in changes:
            dispatcher.brand_name = changes["brand_name"]
        if "log_level" in changes:
            configure_logging(changes["log_level"])
        return get_config()

    return app


# Default application instance
app = create_app(PortalConfig.from_env())
