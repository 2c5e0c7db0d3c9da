"""
Project persistence.

The engine never persists anything itself: after every transition the whole
new project is handed to a ProjectStore, which replaces what it holds.

Project file layout (YAML):

    id: acme
    name: Acme Portal
    schema_version: 1.0.0
    backlog:
      - id: item_3f9c2a1b7d40
        backlog_id: BL-240007
        title: Export sprint report
        ...
    sprints:
      - sprint_number: 5
        status: Planned
        planning:
          new_tasks: [...]
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Protocol

try:
    import yaml
    from pydantic import ValidationError as PydanticValidationError
except ImportError:
    raise ImportError("pyyaml and pydantic are required. Install with: pip install sprintlog")

from sprintlog.backlog.errors import BacklogError
from sprintlog.backlog.schema import Project


class ProjectFileError(BacklogError):
    """The project file is not valid YAML or does not match the schema."""


class ProjectStore(Protocol):
    """Anything that can load a project and replace it wholesale."""

    def load(self) -> Project:
        ...

    def replace(self, project: Project) -> None:
        ...


class MemoryProjectStore:
    """Keeps the project in memory. Handy for tests and embedding."""

    def __init__(self, project: Project):
        self.project = project
        self.saves = 0

    def load(self) -> Project:
        return self.project

    def replace(self, project: Project) -> None:
        self.project = project
        self.saves += 1


class YamlProjectStore:
    """Project stored as one YAML file, rewritten in full on every save."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Project:
        with open(self.path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ProjectFileError(f"Invalid YAML in {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ProjectFileError(f"{self.path} must contain a mapping at the top level")

        try:
            return Project.model_validate(data)
        except PydanticValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ProjectFileError(f"Schema error in {self.path}: {details}") from e

    def replace(self, project: Project) -> None:
        """Write the project atomically: temp file in the same directory, then rename."""
        data = project.model_dump(mode="json")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
