from __future__ import annotations

import base64
import binascii
from typing import Protocol

from mediatether.core.errors import ConfigurationError
from mediatether.domain.models.resource import Credentials


class CredentialVault(Protocol):
    def encrypt(self, plain: str) -> str: ...

    def decrypt(self, cipher: str) -> str: ...


class PlainCredentialVault:
    """Reversible base64 envelope used when no real vault is configured.

    This only keeps secrets out of casual view in the database. Deployments that
    need encryption at rest pass their own ``CredentialVault``.
    """

    PREFIX = "b64:"

    def encrypt(self, plain: str) -> str:
        return self.PREFIX + base64.urlsafe_b64encode(plain.encode("utf-8")).decode("ascii")

    def decrypt(self, cipher: str) -> str:
        if not cipher.startswith(self.PREFIX):
            raise ConfigurationError("Stored credentials were not written by this vault.")
        try:
            return base64.urlsafe_b64decode(cipher[len(self.PREFIX) :].encode("ascii")).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise ConfigurationError("Stored credentials are corrupt.") from exc


def seal_credentials(vault: CredentialVault, credentials: Credentials | None) -> str | None:
    if credentials is None:
        return None
    return vault.encrypt(credentials.to_payload())


def open_credentials(vault: CredentialVault, cipher: str | None) -> Credentials | None:
    if not cipher:
        return None
    return Credentials.from_payload(vault.decrypt(cipher))
