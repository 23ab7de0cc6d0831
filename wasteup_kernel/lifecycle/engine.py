"""
Request Lifecycle Engine — owns every PickupRequest mutation.

States:
  PENDING → SCHEDULED → ON_THE_WAY → COMPLETED
  PENDING | SCHEDULED → CANCELLED
  COMPLETED and CANCELLED are terminal.

Behavioral Contract:
- A requested status equal to the current one is a no-op success: nothing is
  written, logged or sent.
- An illegal edge raises InvalidTransitionError and leaves the record untouched.
- Each mutation writes the record and exactly one ActivityLog entry in one
  atomic unit, guarded by the record's version (lost races raise ConflictError).
- Notifications are dispatched only after the write commits. Their failure is
  logged by the dispatcher and never reaches the caller.
"""

import logging
from concurrent.futures import Future
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Union
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from wasteup_kernel.assignment.resolver import find_operator, resolve
from wasteup_kernel.directory.service import DirectoryService, append_activity
from wasteup_kernel.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from wasteup_kernel.models.notification import NotificationEvent, NotificationKind
from wasteup_kernel.models.pickup import (
    PickupRequest,
    PickupRequestCreate,
    PickupStatus,
)
from wasteup_kernel.models.user import ActorContext, User, UserRole
from wasteup_kernel.notifications.dispatcher import NotificationDispatcher
from wasteup_kernel.store.records import PICKUP_REQUESTS, RecordStore

logger = logging.getLogger(__name__)

# Resident-facing notice per target status; anything else is a generic update
_STATUS_NOTICES: Dict[PickupStatus, NotificationKind] = {
    PickupStatus.ON_THE_WAY: NotificationKind.DRIVER_EN_ROUTE,
    PickupStatus.COMPLETED: NotificationKind.PICKUP_COMPLETED,
}

_ASSIGNABLE = frozenset({PickupStatus.PENDING, PickupStatus.SCHEDULED})


def _short_id(request_id: str) -> str:
    return request_id[-6:]


def _status_label(status: PickupStatus) -> str:
    return status.value.replace("_", " ").lower()


def _event_context(request: PickupRequest) -> dict:
    """Facts about a request that notification copy may mention."""
    return {
        "request_id": request.id,
        "waste_type": request.waste_type.value,
        "location": request.location,
        "zone": request.zone,
        "priority": request.priority.value,
        "status": _status_label(request.status),
        "scheduled_date": request.scheduled_date.isoformat(),
        "operator_name": request.operator_name,
        "resident_name": request.resident_name,
    }


class RequestLifecycleEngine:
    """The pickup-request state machine and its side effects."""

    def __init__(
        self,
        store: RecordStore,
        directory: DirectoryService,
        dispatcher: NotificationDispatcher,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.directory = directory
        self.dispatcher = dispatcher
        self._clock = clock or datetime.utcnow

    # === CREATION ===

    def create_request(
        self,
        actor: ActorContext,
        data: Union[PickupRequestCreate, dict],
    ) -> PickupRequest:
        """
        Create a PENDING request for a resident, or a manual entry by an operator.
        Assigns an operator via the Assignment Resolver.
        """
        payload = self._validate_payload(data)
        resident = None

        if actor.role == UserRole.RESIDENT:
            resident = self.directory.find_user(actor.id)
            if resident is None:
                raise NotFoundError(f"Resident {actor.id} not found")
            if resident.role != UserRole.RESIDENT:
                raise ValidationError(f"User {actor.id} is not a resident")
            resident_id = resident.id
            resident_name = resident.name
            contact_phone = payload.contact_phone or resident.phone
            zone = payload.zone or actor.zone or resident.zone
            preferred = payload.preferred_operator_id or resident.preferred_operator_id

        elif actor.role == UserRole.PSP_OPERATOR:
            operator = self.directory.find_user(actor.id)
            if operator is None:
                raise NotFoundError(f"Operator {actor.id} not found")
            if operator.role != UserRole.PSP_OPERATOR:
                raise ValidationError(f"User {actor.id} is not an operator")
            if not payload.resident_name:
                raise ValidationError("Manual entries need a resident_name")
            resident_id = f"guest-{uuid4().hex[:12]}"
            resident_name = payload.resident_name
            contact_phone = payload.contact_phone or ""
            zone = payload.zone or actor.zone or operator.zone
            preferred = operator.id

        else:
            raise ValidationError(
                f"{actor.role.value} accounts cannot create pickup requests"
            )

        if not zone:
            raise ValidationError("A zone is required")

        now = self._clock()
        request = PickupRequest(
            id=f"req_{uuid4().hex[:12]}",
            resident_id=resident_id,
            resident_name=resident_name,
            preferred_operator_id=preferred,
            zone=zone,
            house_number=payload.house_number,
            street_name=payload.street_name,
            landmark=payload.landmark,
            contact_phone=contact_phone,
            coordinates=payload.coordinates,
            waste_type=payload.waste_type,
            priority=payload.priority,
            scheduled_date=payload.scheduled_date or now.date(),
            status=PickupStatus.PENDING,
            notes=payload.notes,
            created_at=now,
            updated_at=now,
        )

        pool = self.directory.list_operators()
        assigned = find_operator(resolve(request, pool), pool)
        if assigned:
            request.operator_id = assigned.id
            request.operator_name = assigned.name

        with self.store.atomic():
            self.store.insert(PICKUP_REQUESTS, request.model_dump(mode="json"))
            append_activity(
                self.store, actor.id, "CREATE_PICKUP",
                f"New {request.waste_type.value} request created for {request.zone}.",
            )

        logger.info(
            "Created %s in %s for %s (operator: %s)",
            request.id, request.zone, request.resident_id,
            request.operator_id or "unassigned",
        )

        context = _event_context(request)
        if resident is not None:
            self._send(NotificationKind.PICKUP_CONFIRMATION, resident, context)
        if assigned is not None:
            self._send(NotificationKind.NEW_JOB_ALERT, assigned, context)

        return request

    # === TRANSITIONS ===

    def update_status(
        self,
        request_id: str,
        actor_id: str,
        new_status: Union[PickupStatus, str],
    ) -> PickupRequest:
        """Move a request along one edge of the lifecycle graph."""
        target = self._parse_status(new_status)
        request = self.get_request(request_id)
        current = request.status

        if target == current:
            logger.debug("%s already %s; nothing to do", request_id, current.value)
            return request

        if not request.can_transition_to(target):
            raise InvalidTransitionError(current.value, target.value)

        updated_at = self._next_timestamp(request.updated_at)
        with self.store.atomic():
            row = self.store.update(
                PICKUP_REQUESTS,
                request_id,
                {"status": target.value, "updated_at": updated_at.isoformat()},
                expected_version=request.version,
            )
            append_activity(
                self.store, actor_id, "UPDATE_STATUS",
                f"Request ID #{_short_id(request_id)} status updated "
                f"from {current.value} to {target.value}",
            )
        updated = PickupRequest.model_validate(row)

        logger.info(
            "%s moved %s -> %s by %s",
            request_id, current.value, target.value, actor_id,
        )

        resident = self.directory.find_user(updated.resident_id)
        if resident is not None:
            kind = _STATUS_NOTICES.get(target, NotificationKind.STATUS_UPDATE)
            self._send(kind, resident, _event_context(updated))
        return updated

    def assign_operator(
        self, request_id: str, actor_id: str, operator_id: str
    ) -> PickupRequest:
        """Manually assign an operator to a request the resolver left unassigned."""
        request = self.get_request(request_id)
        if request.status not in _ASSIGNABLE:
            raise InvalidTransitionError(
                request.status.value,
                request.status.value,
                detail=f"Cannot assign an operator to a {request.status.value} request.",
            )
        if request.operator_id:
            raise ValidationError(
                f"Request {request_id} is already assigned to {request.operator_id}"
            )

        operator = self.directory.get_user(operator_id)
        if operator.role != UserRole.PSP_OPERATOR:
            raise ValidationError(f"{operator_id} is not an operator")

        with self.store.atomic():
            row = self.store.update(
                PICKUP_REQUESTS,
                request_id,
                {
                    "operator_id": operator.id,
                    "operator_name": operator.name,
                    "updated_at": self._next_timestamp(request.updated_at).isoformat(),
                },
                expected_version=request.version,
            )
            append_activity(
                self.store, actor_id, "ASSIGN_OPERATOR",
                f"Request ID #{_short_id(request_id)} assigned to {operator.name}",
            )
        updated = PickupRequest.model_validate(row)
        self._send(NotificationKind.NEW_JOB_ALERT, operator, _event_context(updated))
        return updated

    def send_reminders(self, on_date: Optional[date] = None) -> List[PickupRequest]:
        """
        Remind residents of SCHEDULED pickups falling on the given date.
        Returns the requests whose reminder was handed to the dispatcher; in
        background mode the notifications themselves may still be in flight.
        """
        on_date = on_date or self._clock().date()
        due = self.store.find(
            PICKUP_REQUESTS,
            {
                "status": PickupStatus.SCHEDULED.value,
                "scheduled_date": on_date.isoformat(),
            },
        )
        reminded = []
        for row in due:
            request = PickupRequest.model_validate(row)
            resident = self.directory.find_user(request.resident_id)
            if resident is None:
                continue
            if self._send(NotificationKind.REMINDER, resident, _event_context(request)) is not None:
                reminded.append(request)
        logger.info("Queued %d reminders for %s", len(reminded), on_date.isoformat())
        return reminded

    # === READS ===

    def get_request(self, request_id: str) -> PickupRequest:
        row = self.store.get(PICKUP_REQUESTS, request_id)
        if row is None:
            raise NotFoundError(f"Pickup request {request_id} not found")
        return PickupRequest.model_validate(row)

    def list_requests(
        self,
        actor_id: Optional[str] = None,
        role: Optional[UserRole] = None,
    ) -> List[PickupRequest]:
        """
        Requests visible to an actor, newest first.
        Admins (or no actor) see everything, residents their own,
        operators the jobs assigned to them.
        """
        if actor_id and role is None:
            role = self.directory.get_user(actor_id).role

        if not actor_id or role == UserRole.ADMIN:
            filter = None
        elif role == UserRole.RESIDENT:
            filter = {"resident_id": actor_id}
        elif role == UserRole.PSP_OPERATOR:
            filter = {"operator_id": actor_id}
        else:
            return []

        requests = [
            PickupRequest.model_validate(r)
            for r in self.store.find(PICKUP_REQUESTS, filter)
        ]
        return list(reversed(sorted(requests, key=lambda r: r.created_at)))

    # --- Internals ---

    def _send(
        self, kind: NotificationKind, recipient: User, context: dict
    ) -> Optional[Future]:
        event = NotificationEvent(kind=kind, recipient=recipient, context=context)
        return self.dispatcher.dispatch(event)

    def _next_timestamp(self, previous: datetime) -> datetime:
        """Current time, nudged forward so updated_at strictly increases."""
        now = self._clock()
        if now <= previous:
            now = previous + timedelta(microseconds=1)
        return now

    @staticmethod
    def _validate_payload(data: Union[PickupRequestCreate, dict]) -> PickupRequestCreate:
        if isinstance(data, PickupRequestCreate):
            return data
        try:
            return PickupRequestCreate.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid pickup request: {e}") from e

    @staticmethod
    def _parse_status(status: Union[PickupStatus, str]) -> PickupStatus:
        try:
            return PickupStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown pickup status: {status}") from None
