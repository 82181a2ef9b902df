from __future__ import annotations

from typing import Callable, Sequence

from mediatether.core.config import KindSettings, Settings
from mediatether.core.mime import FileKind, extension_for_mime, kind_for_mime, normalize_mime_type

LocalHostingPredicate = Callable[[str], bool]


class MimePolicyService:
    """Allow-list and per-kind hosting rules for mime types."""

    def __init__(
        self,
        settings: Settings,
        *,
        local_predicates: Sequence[LocalHostingPredicate] = (),
    ) -> None:
        self.settings = settings
        self.allowed_mime_types = frozenset(normalize_mime_type(m) for m in settings.allowed_mime_types)
        self._local_predicates: list[LocalHostingPredicate] = list(local_predicates)

    def register_local_predicate(self, predicate: LocalHostingPredicate) -> None:
        self._local_predicates.append(predicate)

    def is_allowed(self, mime_type: str | None) -> bool:
        return normalize_mime_type(mime_type) in self.allowed_mime_types

    def kind_for(self, mime_type: str | None) -> FileKind:
        return kind_for_mime(mime_type)

    def kind_settings(self, mime_type: str | None) -> KindSettings:
        return self.settings.kind(self.kind_for(mime_type))

    def forces_local(self, mime_type: str | None) -> bool:
        normalized = normalize_mime_type(mime_type)
        if self.kind_settings(normalized).local:
            return True
        return any(predicate(normalized) for predicate in self._local_predicates)

    def proxy_enabled(self, mime_type: str | None) -> bool:
        kind = self.kind_settings(mime_type)
        return kind.proxy_enabled and not kind.local

    def ttl_for(self, mime_type: str | None) -> float:
        return self.kind_settings(mime_type).cache_ttl_seconds

    def extension_for(self, mime_type: str | None) -> str:
        return extension_for_mime(mime_type)
