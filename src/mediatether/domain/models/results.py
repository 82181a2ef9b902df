from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ResultKind(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(slots=True)
class UrlResult:
    url: str
    kind: ResultKind
    message: str = ""
    resource_id: str | None = None


@dataclass(slots=True)
class ImportReport:
    url: str
    results: list[UrlResult] = field(default_factory=list)
    listed: int = 0
    listing_failed: bool = False
    deferred: bool = False
    deferred_urls: list[str] = field(default_factory=list)
    deferred_listings: list[str] = field(default_factory=list)
    load_more: str | None = None

    @property
    def ok(self) -> bool:
        return any(result.kind is ResultKind.SUCCESS for result in self.results)

    @property
    def succeeded(self) -> list[UrlResult]:
        return [r for r in self.results if r.kind is ResultKind.SUCCESS]

    @property
    def errors(self) -> list[UrlResult]:
        return [r for r in self.results if r.kind is ResultKind.ERROR]

    @property
    def skipped(self) -> list[UrlResult]:
        return [r for r in self.results if r.kind is ResultKind.SKIPPED]

    def merge(self, other: ImportReport) -> None:
        self.results.extend(other.results)
        self.listed += other.listed
        self.listing_failed = self.listing_failed or other.listing_failed
        self.deferred = self.deferred or other.deferred
        self.deferred_urls.extend(other.deferred_urls)
        self.deferred_listings.extend(other.deferred_listings)
        self.load_more = other.load_more
