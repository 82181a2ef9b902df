from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console

from mediatether.application.container import Engine, build_engine
from mediatether.application.services.project_service import ProjectService
from mediatether.core.config import AppPaths
from mediatether.core.errors import ProjectNotInitializedError


@dataclass(slots=True)
class CLIContext:
    paths: AppPaths
    console: Console

    def engine(self) -> Engine:
        if not ProjectService(self.paths).is_initialized():
            raise ProjectNotInitializedError(
                f"Project is not initialized. Run 'tether init' first in {self.paths.project_root}"
            )
        return build_engine(self.paths)
