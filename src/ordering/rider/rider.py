"""Rider aggregate: delivery agents referenced by assignments."""

from datetime import UTC, datetime
from enum import Enum

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import ConflictError, OrderingError, rider_not_found

logger = structlog.get_logger(__name__)


class RiderStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@ordering.event(part_of="Rider")
class RiderStatusChanged:
    __version__ = 1

    rider_id = Identifier(required=True)
    status = String(required=True)
    changed_at = DateTime(required=True)


@ordering.aggregate
class Rider:
    full_name = String(required=True, max_length=255)
    phone = String(required=True, max_length=30)
    email = String(max_length=255)
    vehicle = String(max_length=100)
    user_id = Identifier()  # linked storefront account, if any
    status = String(max_length=20, choices=RiderStatus, default=RiderStatus.ACTIVE.value)
    created_at = DateTime()
    updated_at = DateTime()

    @property
    def is_active(self) -> bool:
        return self.status == RiderStatus.ACTIVE.value

    def change_status(self, status: str) -> None:
        if self.status == status:
            return
        now = datetime.now(UTC)
        self.status = RiderStatus(status).value
        self.updated_at = now
        self.raise_(RiderStatusChanged(rider_id=str(self.id), status=self.status, changed_at=now))


@ordering.repository(part_of=Rider)
class RiderRepository:
    def get_rider(self, rider_id: str) -> Rider:
        """Fetch a rider or raise RIDER_NOT_FOUND."""
        try:
            return self.get(rider_id)
        except ObjectNotFoundError as exc:
            raise rider_not_found(rider_id) from exc

    def find_by_phone(self, phone: str) -> Rider | None:
        return self._dao.query.filter(phone=phone).all().first


@ordering.command(part_of="Rider")
class RegisterRider:
    full_name = String(required=True, max_length=255)
    phone = String(required=True, max_length=30)
    email = String(max_length=255)
    vehicle = String(max_length=100)
    user_id = Identifier()


@ordering.command(part_of="Rider")
class ChangeRiderStatus:
    rider_id = Identifier(required=True)
    status = String(required=True, choices=RiderStatus)


@ordering.command_handler(part_of=Rider)
class RiderHandler:
    @handle(RegisterRider)
    def register_rider(self, command) -> str:
        repo = current_domain.repository_for(Rider)
        if repo.find_by_phone(command.phone) is not None:
            raise ConflictError(f"A rider with phone {command.phone} already exists", code="RIDER_EXISTS")
        now = datetime.now(UTC)
        rider = Rider(
            full_name=command.full_name,
            phone=command.phone,
            email=command.email,
            vehicle=command.vehicle,
            user_id=command.user_id,
            created_at=now,
            updated_at=now,
        )
        repo.add(rider)
        logger.info("Rider registered", rider_id=str(rider.id))
        return str(rider.id)

    @handle(ChangeRiderStatus)
    def change_status(self, command) -> dict:
        repo = current_domain.repository_for(Rider)
        rider = repo.get_rider(command.rider_id)
        rider.change_status(command.status)
        repo.add(rider)
        return rider.to_dict()


def import_riders(rows: list[dict]) -> dict:
    """Register riders from spreadsheet rows, one command per row.

    A bad row is reported in the results and does not stop the rest of the
    batch. Rows already imported stay imported if a later row fails.
    """
    results = []
    for index, row in enumerate(rows):
        full_name, phone = row.get("full_name"), row.get("phone")
        if not full_name or not phone:
            results.append({"row": index, "rider_id": None, "error": "full_name and phone are required"})
            continue
        command = RegisterRider(
            full_name=full_name,
            phone=phone,
            email=row.get("email"),
            vehicle=row.get("vehicle"),
            user_id=row.get("user_id"),
        )
        try:
            rider_id = current_domain.process(command, asynchronous=False)
        except (OrderingError, ValidationError) as exc:
            error = exc.message if isinstance(exc, OrderingError) else str(exc.messages)
            results.append({"row": index, "rider_id": None, "error": error})
            continue
        results.append({"row": index, "rider_id": rider_id, "error": None})

    imported = sum(1 for r in results if r["rider_id"])
    logger.info("Rider import finished", imported=imported, failed=len(results) - imported)
    return {"imported": imported, "failed": len(results) - imported, "results": results}
