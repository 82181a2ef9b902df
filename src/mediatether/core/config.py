from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from mediatether.core.errors import ConfigurationError
from mediatether.core.mime import FileKind, SUPPORTED_MIME_TYPES, normalize_mime_type


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    tether_dir: Path
    db_path: Path
    archive_dir: Path
    cache_dir: Path
    temp_dir: Path


DEFAULT_TETHER_DIRNAME = ".tether"
DEFAULT_ALLOWED_MIME_TYPES = ("application/pdf", "image/jpeg", "image/png")
DEFAULT_TRANSPORT_TIMEOUT_SECONDS = 10.0
DEFAULT_LISTING_PAGE_SIZE = 200
DEFAULT_SAFETY_MARGIN_SECONDS = 10.0
DEFAULT_QUEUE_BATCH_SIZE = 10
DEFAULT_SYNC_LEASE_SECONDS = 6 * 3600.0


def load_paths(project_root: Path | None = None) -> AppPaths:
    root = (project_root or Path.cwd()).expanduser().resolve()

    tether_home_raw = os.getenv("TETHER_HOME")
    if tether_home_raw:
        tether_dir = Path(tether_home_raw).expanduser().resolve()
    else:
        tether_dir = root / DEFAULT_TETHER_DIRNAME

    return AppPaths(
        project_root=root,
        tether_dir=tether_dir,
        db_path=tether_dir / "tether.db",
        archive_dir=tether_dir / "archive",
        cache_dir=tether_dir / "proxy",
        temp_dir=tether_dir / "tmp",
    )


@dataclass(frozen=True)
class KindSettings:
    """Hosting and proxy behaviour for one family of file types."""

    local: bool = False
    proxy_enabled: bool = False
    proxy_max_age_hours: float = 24.0

    @property
    def cache_ttl_seconds(self) -> float:
        return self.proxy_max_age_hours * 3600.0


def _default_kinds() -> dict[FileKind, KindSettings]:
    return {
        FileKind.IMAGE: KindSettings(proxy_enabled=True, proxy_max_age_hours=24.0),
        FileKind.AUDIO: KindSettings(proxy_max_age_hours=24.0),
        FileKind.VIDEO: KindSettings(proxy_max_age_hours=24.0 * 7),
        FileKind.ZIP: KindSettings(proxy_max_age_hours=24.0),
        FileKind.FILE: KindSettings(proxy_max_age_hours=24.0),
    }


@dataclass(frozen=True)
class Settings:
    allowed_mime_types: tuple[str, ...] = DEFAULT_ALLOWED_MIME_TYPES
    transport_timeout_seconds: float = DEFAULT_TRANSPORT_TIMEOUT_SECONDS
    listing_page_size: int = DEFAULT_LISTING_PAGE_SIZE
    execution_ceiling_seconds: float | None = None
    execution_safety_margin_seconds: float = DEFAULT_SAFETY_MARGIN_SECONDS
    max_execution_check: bool = False
    sync_delete_unused: bool = True
    force_local_for_plain_http: bool = False
    queue_batch_size: int = DEFAULT_QUEUE_BATCH_SIZE
    sync_lease_seconds: float = DEFAULT_SYNC_LEASE_SECONDS
    kinds: dict[FileKind, KindSettings] = field(default_factory=_default_kinds)

    def kind(self, kind: FileKind) -> KindSettings:
        return self.kinds.get(kind) or KindSettings()


def load_settings() -> Settings:
    """Build ``Settings`` from ``TETHER_*`` environment variables.

    Malformed numeric or boolean values fall back to their defaults. An allowed
    mime type the engine cannot handle is a configuration error.
    """
    defaults = Settings()
    kinds: dict[FileKind, KindSettings] = {}
    for kind, base in defaults.kinds.items():
        prefix = f"TETHER_{kind.name}"
        mode = (os.getenv(f"{prefix}_MODE") or ("local" if base.local else "external")).strip().lower()
        if mode not in {"local", "external"}:
            raise ConfigurationError(f"{prefix}_MODE must be 'local' or 'external', got {mode!r}")
        kinds[kind] = KindSettings(
            local=mode == "local",
            proxy_enabled=_read_bool_env(f"{prefix}_PROXY", base.proxy_enabled),
            proxy_max_age_hours=_read_float_env(f"{prefix}_PROXY_MAX_AGE_HOURS", base.proxy_max_age_hours),
        )

    return Settings(
        allowed_mime_types=_read_mime_list_env("TETHER_ALLOWED_MIME_TYPES", defaults.allowed_mime_types),
        transport_timeout_seconds=_read_float_env(
            "TETHER_TRANSPORT_TIMEOUT_SECONDS", defaults.transport_timeout_seconds
        ),
        listing_page_size=_read_int_env("TETHER_LISTING_PAGE_SIZE", defaults.listing_page_size),
        execution_ceiling_seconds=_read_optional_float_env("TETHER_EXECUTION_CEILING_SECONDS"),
        execution_safety_margin_seconds=_read_float_env(
            "TETHER_EXECUTION_SAFETY_MARGIN_SECONDS", defaults.execution_safety_margin_seconds
        ),
        max_execution_check=_read_bool_env("TETHER_MAX_EXECUTION_CHECK", defaults.max_execution_check),
        sync_delete_unused=_read_bool_env("TETHER_SYNC_DELETE_UNUSED", defaults.sync_delete_unused),
        force_local_for_plain_http=_read_bool_env(
            "TETHER_FORCE_LOCAL_FOR_PLAIN_HTTP", defaults.force_local_for_plain_http
        ),
        queue_batch_size=_read_int_env("TETHER_QUEUE_BATCH_SIZE", defaults.queue_batch_size),
        sync_lease_seconds=_read_float_env("TETHER_SYNC_LEASE_SECONDS", defaults.sync_lease_seconds),
        kinds=kinds,
    )


def _read_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = str(raw).strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _read_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _read_optional_float_env(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _read_mime_list_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    values: list[str] = []
    for item in raw.split(","):
        mime_type = normalize_mime_type(item)
        if not mime_type:
            continue
        if mime_type not in SUPPORTED_MIME_TYPES:
            raise ConfigurationError(f"{name} lists an unsupported mime type: {mime_type}")
        if mime_type not in values:
            values.append(mime_type)
    return tuple(values)
