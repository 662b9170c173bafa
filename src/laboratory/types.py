"""Core type definitions"""

from dataclasses import dataclass
from enum import Enum


class LabState(Enum):
    PACKAGED = "packaged"
    EXPANDED = "expanded"
    MOUNTED = "mounted"


@dataclass(frozen=True)
class Env:
    """Environment variable assignment for an app"""
    key: str
    value: str


@dataclass(frozen=True)
class App:
    """Runnable program inside a lab"""
    name: str
    command: str
    work_dir: str = "."
    envs: tuple[Env, ...] = ()


@dataclass(frozen=True)
class LabConfig:
    """Parsed lab manifest"""
    name: str
    apps: tuple[App, ...] = ()

    def find_app(self, name: str) -> App | None:
        return next((app for app in self.apps if app.name == name), None)


@dataclass(frozen=True)
class LabSummary:
    """Read-only view of a lab for listing"""
    name: str
    state: LabState
    image_path: str | None
    expanded_path: str | None
    drive_letter: str | None
    apps: tuple[str, ...]
