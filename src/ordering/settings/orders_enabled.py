"""Orders-enabled gate: a stored switch with admin/schedule precedence.

The opening-hours scheduler and staff both write the same key. A value set by
staff sticks until staff hand control back to the schedule: scheduler writes
are ignored while the stored source is ``admin``. Checkout re-reads the key on
every request.
"""

from datetime import UTC, datetime
from enum import Enum

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, String
from protean.utils.globals import current_domain

from ordering.domain import ordering

logger = structlog.get_logger(__name__)

ORDERS_ENABLED_KEY = "orders_enabled"


class SettingSource(Enum):
    ADMIN = "admin"
    SCHEDULE = "schedule"


@ordering.event(part_of="StoreSetting")
class OrdersEnabledChanged:
    __version__ = 1

    enabled = Boolean(required=True)
    source = String(required=True)
    changed_at = DateTime(required=True)


@ordering.aggregate
class StoreSetting:
    key = String(max_length=50, identifier=True)
    enabled = Boolean(default=True)
    source = String(max_length=20, choices=SettingSource, default=SettingSource.SCHEDULE.value)
    updated_at = DateTime()

    def apply(self, enabled: bool, source: str) -> bool:
        """Apply a write from staff or the scheduler. Returns False when it was ignored."""
        if source == SettingSource.SCHEDULE.value and self.source == SettingSource.ADMIN.value:
            return False

        now = datetime.now(UTC)
        changed = self.enabled != enabled or self.source != source
        self.enabled = enabled
        self.source = source
        self.updated_at = now
        if changed:
            self.raise_(OrdersEnabledChanged(enabled=enabled, source=source, changed_at=now))
        return True

    def resume_schedule(self) -> None:
        """Hand control back to the scheduler, keeping the current value."""
        if self.source == SettingSource.SCHEDULE.value:
            return
        now = datetime.now(UTC)
        self.source = SettingSource.SCHEDULE.value
        self.updated_at = now
        self.raise_(OrdersEnabledChanged(enabled=self.enabled, source=self.source, changed_at=now))


@ordering.command(part_of="StoreSetting")
class SetOrdersEnabled:
    enabled = Boolean(required=True)
    source = String(required=True, choices=SettingSource)


@ordering.command(part_of="StoreSetting")
class ResumeOrdersSchedule:
    pass


def _load_setting() -> StoreSetting:
    repo = current_domain.repository_for(StoreSetting)
    try:
        return repo.get(ORDERS_ENABLED_KEY)
    except ObjectNotFoundError:
        return StoreSetting(key=ORDERS_ENABLED_KEY)


@ordering.command_handler(part_of=StoreSetting)
class OrdersEnabledHandler:
    @handle(SetOrdersEnabled)
    def set_orders_enabled(self, command) -> dict:
        setting = _load_setting()
        if setting.apply(command.enabled, command.source):
            current_domain.repository_for(StoreSetting).add(setting)
            logger.info("Orders enabled updated", enabled=setting.enabled, source=setting.source)
        else:
            logger.info(
                "Scheduled orders toggle ignored, value is held by staff",
                requested=command.enabled,
                held=setting.enabled,
            )
        return {"enabled": setting.enabled, "source": setting.source}

    @handle(ResumeOrdersSchedule)
    def resume_schedule(self, command) -> dict:  # noqa: ARG002
        setting = _load_setting()
        setting.resume_schedule()
        current_domain.repository_for(StoreSetting).add(setting)
        return {"enabled": setting.enabled, "source": setting.source}


def orders_enabled_state() -> dict:
    """Read the gate from the store. An unset key means ordering is open."""
    setting = _load_setting()
    return {"enabled": setting.enabled, "source": setting.source}


def orders_enabled() -> bool:
    return bool(orders_enabled_state()["enabled"])
