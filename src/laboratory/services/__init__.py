"""External collaborators used by labs."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from laboratory.services.archive import TarArchiver
from laboratory.services.launcher import ProcessLauncher
from laboratory.services.volumes import default_volumes


@runtime_checkable
class Archiver(Protocol):
    def pack(self, source: Path, image: Path) -> None: ...

    def unpack(self, image: Path, target: Path) -> None: ...


@runtime_checkable
class Volumes(Protocol):
    """Drive-letter bindings. ``bind`` and ``unbind`` report success."""

    def bind(self, letter: str, path: Path) -> bool: ...

    def unbind(self, letter: str) -> bool: ...

    def token(self, letter: str) -> str: ...

    def path(self, letter: str, relative: str) -> str: ...


@runtime_checkable
class Launcher(Protocol):
    def launch(self, argv: list[str], env: dict[str, str], cwd: str): ...


@dataclass(frozen=True)
class Services:
    """Archive, volume and launcher backends for lab operations"""
    archiver: Archiver = field(default_factory=TarArchiver)
    volumes: Volumes = field(default_factory=default_volumes)
    launcher: Launcher = field(default_factory=ProcessLauncher)


def default_services() -> Services:
    return Services()
