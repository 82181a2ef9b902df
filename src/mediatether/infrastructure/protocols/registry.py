from __future__ import annotations

from pathlib import Path
from typing import Sequence

from mediatether.core.config import Settings
from mediatether.core.errors import UnsupportedTransport
from mediatether.core.log_sink import LogSink, LoggingLogSink
from mediatether.domain.models.resource import Credentials, ResourceRecord
from mediatether.infrastructure.protocols.base import ProtocolHandler
from mediatether.infrastructure.protocols.file import FileProtocolHandler
from mediatether.infrastructure.protocols.ftp import FtpProtocolHandler
from mediatether.infrastructure.protocols.http import HttpProtocolHandler
from mediatether.infrastructure.protocols.sftp import SftpProtocolHandler
from mediatether.infrastructure.vault.credential_vault import (
    CredentialVault,
    PlainCredentialVault,
    open_credentials,
)

DEFAULT_HANDLERS: tuple[type[ProtocolHandler], ...] = (
    FileProtocolHandler,
    FtpProtocolHandler,
    HttpProtocolHandler,
    SftpProtocolHandler,
)


class ProtocolRegistry:
    """Pick the protocol handler responsible for a URL.

    Handlers are tried in registration order; the first one that is both
    available in this environment and compatible with the URL wins.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        temp_dir: Path,
        handlers: Sequence[type[ProtocolHandler]] = DEFAULT_HANDLERS,
        vault: CredentialVault | None = None,
        log_sink: LogSink | None = None,
    ) -> None:
        self.settings = settings
        self.temp_dir = temp_dir
        self._handlers: list[type[ProtocolHandler]] = list(handlers)
        self.vault = vault or PlainCredentialVault()
        self.log_sink = log_sink or LoggingLogSink()

    @property
    def handler_classes(self) -> tuple[type[ProtocolHandler], ...]:
        return tuple(self._handlers)

    def register(self, handler_cls: type[ProtocolHandler], *, first: bool = False) -> None:
        if handler_cls in self._handlers:
            return
        if first:
            self._handlers.insert(0, handler_cls)
        else:
            self._handlers.append(handler_cls)

    def resolve(self, url: str, credentials: Credentials | None = None) -> ProtocolHandler:
        for handler_cls in self._handlers:
            handler = handler_cls(url, settings=self.settings, temp_dir=self.temp_dir)
            if not handler.is_available():
                self.log_sink.record(
                    f"{handler_cls.__name__} rejected: transport unavailable in this environment",
                    url,
                    level="debug",
                    verbosity=2,
                )
                continue
            if not handler.is_compatible():
                self.log_sink.record(
                    f"{handler_cls.__name__} rejected: URL is incompatible",
                    url,
                    level="debug",
                    verbosity=2,
                )
                continue
            handler.set_credentials(credentials)
            self.log_sink.record(f"Using {handler_cls.__name__}", url, level="debug", verbosity=1)
            return handler

        self.log_sink.record("No protocol handler found", url, level="error")
        raise UnsupportedTransport(f"No protocol handler supports {url}")

    def resolve_for_record(self, record: ResourceRecord) -> ProtocolHandler:
        credentials = open_credentials(self.vault, record.credentials_cipher)
        return self.resolve(record.source_uri, credentials)
