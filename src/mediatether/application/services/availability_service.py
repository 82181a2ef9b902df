from __future__ import annotations

from dataclasses import dataclass, field

from mediatether.application.services.mime_policy_service import MimePolicyService
from mediatether.core.errors import TetherError
from mediatether.core.log_sink import LogSink, LoggingLogSink
from mediatether.core.time import now_utc_iso
from mediatether.infrastructure.db.repos.resource_repo import ResourceRepo
from mediatether.infrastructure.protocols.registry import ProtocolRegistry


@dataclass(slots=True)
class AvailabilityIssue:
    resource_id: str
    source_uri: str
    message: str


@dataclass(slots=True)
class AvailabilityReport:
    checked: int = 0
    unavailable: int = 0
    issues: list[AvailabilityIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


class AvailabilityService:
    def __init__(
        self,
        *,
        registry: ProtocolRegistry,
        resource_repo: ResourceRepo,
        mime_policy: MimePolicyService,
        log_sink: LogSink | None = None,
    ) -> None:
        self.registry = registry
        self.resource_repo = resource_repo
        self.mime_policy = mime_policy
        self.log_sink = log_sink or LoggingLogSink()

    def check_all(self) -> AvailabilityReport:
        report = AvailabilityReport()
        for record in self.resource_repo.list_referenced():
            report.checked += 1
            try:
                handler = self.registry.resolve_for_record(record)
                available = handler.check_availability(record.source_uri)
                reason = "remote file did not answer the probe"
            except TetherError as exc:
                available = False
                reason = str(exc)

            if available and not self.mime_policy.is_allowed(record.mime_type):
                report.issues.append(
                    AvailabilityIssue(record.id, record.source_uri, f"mime type {record.mime_type} is no longer allowed")
                )
            if not available:
                report.unavailable += 1
                report.issues.append(AvailabilityIssue(record.id, record.source_uri, reason))

            if available != record.available:
                self.resource_repo.set_available(record.id, available, updated_at=now_utc_iso())
                state = "available again" if available else "unavailable"
                self.log_sink.record(f"Resource is {state}", record.source_uri, level="warning")

        self.log_sink.record(
            f"Availability sweep checked {report.checked} resource(s), {report.unavailable} unavailable",
            level="info",
        )
        return report
