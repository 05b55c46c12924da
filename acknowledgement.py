"""
GTSD — Metrics Acknowledgement
Per-version state machine: a targets snapshot starts Unacknowledged and
becomes Acknowledged once the user confirms it. A new snapshot version starts
over. Lookups match computed_at at whole-second resolution so clients that
drop milliseconds still hit the stored row.

acknowledge() returns Ok/Err rather than raising: Err(ValidationError) means
fix the input, Err(NotFoundError) means the targets were regenerated since the
client fetched them and it should refetch.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

import stores
from errors import Err, NotFoundError, Ok, Result, ValidationError
from models import MetricsAcknowledgement, TargetsSnapshot
from schemas import AcknowledgeMetricsRequest
from timestamps import as_utc, format_utc, now_utc, same_second

log = logging.getLogger(__name__)


@dataclass
class AcknowledgeOutcome:
    acknowledgement: MetricsAcknowledgement
    created: bool


@dataclass
class CurrentMetrics:
    targets: TargetsSnapshot
    acknowledgement: Optional[MetricsAcknowledgement]

    @property
    def needs_acknowledgment(self) -> bool:
        return self.acknowledgement is None


def _validation_error(exc: PydanticValidationError) -> ValidationError:
    problems = [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    first = problems[0]
    return ValidationError(first["message"], field=first["field"], context={"errors": problems})


async def get_current_metrics(db: AsyncSession, user_id: int) -> CurrentMetrics:
    """Latest snapshot plus its acknowledgement. Never computes on demand."""
    latest = await stores.get_latest_targets(db, user_id)
    if latest is None:
        raise NotFoundError(
            "No metrics available. Generate a plan to compute your targets.",
            context={"user_id": user_id},
        )
    ack = await stores.find_acknowledgement(db, user_id, latest.version)
    return CurrentMetrics(targets=latest, acknowledgement=ack)


async def needs_acknowledgment(db: AsyncSession, user_id: int) -> bool:
    return (await get_current_metrics(db, user_id)).needs_acknowledgment


async def acknowledge(
    db: AsyncSession,
    user_id: int,
    payload: Union[AcknowledgeMetricsRequest, dict[str, Any]],
    now: Optional[datetime] = None,
) -> Result[AcknowledgeOutcome]:
    if not isinstance(payload, AcknowledgeMetricsRequest):
        try:
            payload = AcknowledgeMetricsRequest.model_validate(payload)
        except PydanticValidationError as e:
            return Err(_validation_error(e))

    requested_at = payload.metrics_computed_at
    snapshot = await stores.find_targets_by_version(db, user_id, payload.version)

    if snapshot is None or not same_second(snapshot.computed_at, requested_at):
        latest = await stores.get_latest_targets(db, user_id)
        log.warning(
            f"Metrics not found for user {user_id}: requested v{payload.version} at "
            f"{format_utc(requested_at)}, latest v{latest.version if latest else None}"
        )
        return Err(NotFoundError(
            "Metrics not found for the specified timestamp and version",
            context={
                "requested_version": payload.version,
                "requested_computed_at": format_utc(requested_at),
                "latest_version": latest.version if latest else None,
                "latest_computed_at": format_utc(latest.computed_at) if latest else None,
            },
        ))

    # acknowledged_at may never precede the metrics it confirms
    acknowledged_at = max(now or now_utc(), as_utc(snapshot.computed_at))
    ack, created = await stores.upsert_acknowledgement(db, user_id, snapshot, acknowledged_at)

    if created:
        log.info(f"User {user_id} acknowledged metrics v{snapshot.version}")
    else:
        log.info(f"User {user_id} already acknowledged metrics v{snapshot.version}")
    return Ok(AcknowledgeOutcome(acknowledgement=ack, created=created))
