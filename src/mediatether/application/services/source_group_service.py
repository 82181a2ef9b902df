from __future__ import annotations

from mediatether.application.services.resource_service import ResourceService
from mediatether.core.errors import SourceGroupError
from mediatether.core.ids import new_uuid
from mediatether.core.time import now_utc_iso
from mediatether.domain.models.resource import Credentials
from mediatether.domain.models.sync import SourceGroup
from mediatether.infrastructure.db.repos.source_group_repo import SourceGroupRepo
from mediatether.infrastructure.vault.credential_vault import CredentialVault, open_credentials, seal_credentials


class SourceGroupService:
    def __init__(self, group_repo: SourceGroupRepo, resource_service: ResourceService, vault: CredentialVault) -> None:
        self.group_repo = group_repo
        self.resource_service = resource_service
        self.vault = vault

    def create(
        self,
        name: str,
        url: str,
        *,
        credentials: Credentials | None = None,
        interval_seconds: int = 86_400,
        delete_unused: bool = True,
    ) -> SourceGroup:
        if not name.strip():
            raise SourceGroupError("Source group name must not be empty")
        if interval_seconds <= 0:
            raise SourceGroupError("Sync interval must be positive")
        group = SourceGroup(
            id=new_uuid(),
            name=name.strip(),
            url=url.strip(),
            created_at=now_utc_iso(),
            interval_seconds=interval_seconds,
            delete_unused=delete_unused,
            credentials_cipher=seal_credentials(self.vault, credentials),
        )
        self.group_repo.insert(group)
        return group

    def get(self, group_id: str) -> SourceGroup:
        group = self.group_repo.get_by_id(group_id) or self.group_repo.get_by_name(group_id)
        if group is None:
            raise SourceGroupError(f"Source group not found: {group_id}")
        return group

    def list(self) -> list[SourceGroup]:
        return self.group_repo.list()

    def mark_synced(self, group_id: str) -> None:
        self.group_repo.mark_synced(group_id, now_utc_iso())

    def credentials_for(self, group: SourceGroup) -> Credentials | None:
        return open_credentials(self.vault, group.credentials_cipher)

    def remove(self, group_id: str, *, keep_files: bool = False) -> int:
        """Delete a group and, unless ``keep_files``, every resource it synced."""
        group = self.get(group_id)
        removed = 0 if keep_files else self.resource_service.delete_group_files(group.id)
        self.group_repo.delete(group.id)
        return removed
