"""Import tables and module naming for Python sources."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class ImportTable:
    """Local names bound by a module's import statements.

    ``names`` maps the local binding to the dotted target it stands for:
    ``from app.models import User as U`` binds ``U -> app.models.User``,
    ``import app.models as m`` binds ``m -> app.models``.
    """

    names: dict[str, str] = field(default_factory=dict)
    wildcards: list[str] = field(default_factory=list)

    def add(self, local_name: str, target: str) -> None:
        self.names[local_name] = target

    def add_wildcard(self, module_name: str) -> None:
        if module_name and module_name not in self.wildcards:
            self.wildcards.append(module_name)

    def lookup(self, local_name: str) -> Optional[str]:
        return self.names.get(local_name)

    def __contains__(self, local_name: object) -> bool:
        return local_name in self.names

    def __len__(self) -> int:
        return len(self.names)


def resolve_relative_module(current_module: str, module: Optional[str], level: int) -> str:
    """Turn ``from ..x import y`` into an absolute module name.

    ``current_module`` is the importing module; for a package ``__init__``
    pass ``"<package>.__init__"`` so one level resolves to the package.
    """
    if level <= 0:
        return module or ""
    base_parts = current_module.split(".") if current_module else []
    if level > len(base_parts):
        return module or ""
    base_parts = base_parts[:-level]
    module_parts = module.split(".") if module else []
    return ".".join([p for p in (base_parts + module_parts) if p])


def module_name_for_path(file_path: Path, root_path: Optional[Path] = None) -> str:
    """Dotted module name of a file relative to ``root_path``."""
    file_path = Path(file_path)
    rel_path = file_path
    if root_path is not None:
        try:
            rel_path = file_path.relative_to(root_path)
        except ValueError:
            rel_path = file_path

    parts = list(rel_path.parts)
    if not parts:
        return ""

    if parts[-1] == "__init__.py":
        parts = parts[:-1]
    else:
        parts[-1] = parts[-1][: -len(".py")] if parts[-1].endswith(".py") else parts[-1]
    return ".".join([p for p in parts if p and p not in (".", "/")])
