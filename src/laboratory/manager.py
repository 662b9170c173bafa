"""User-facing verbs over the lab cache.

Each verb opens a locked cache session, applies one lab operation and
writes the cache back before returning. Verbs are also available as
frozen dataclasses dispatched by ``execute``.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from fuuid import b58_fuuid

from laboratory.config import cache_path, expanded_dir
from laboratory.errors import InvalidStateError
from laboratory.labs.lab import Lab
from laboratory.logging import get_logger
from laboratory.services import Services, default_services
from laboratory.storage.cache import cache_session
from laboratory.types import LabConfig, LabSummary

logger = get_logger(__name__)


class Manager:
    """Sequences cache load, one lab operation and cache write-back."""

    def __init__(self, path=None, services: Services | None = None):
        self.path = Path(path) if path else cache_path()
        self.services = services or default_services()

    def _session(self, write: bool = True):
        return cache_session(self.path, self.services, write=write)

    def import_lab(self, config, image=None, path=None) -> LabSummary:
        """Register a new lab from an image or an expanded directory."""
        if (image is None) == (path is None):
            raise InvalidStateError(
                "Import needs exactly one of an image or an expanded directory",
                details={"image": image, "path": path},
            )
        with self._session() as cache:
            if image is not None:
                lab = Lab.from_image(Path(image).absolute(), self.services)
            else:
                lab = Lab.from_directory(Path(path).absolute(), self.services)
            lab.read_config(config)
            cache.add(lab)
            logger.info({"event": "lab_imported", "lab": lab.name, "state": lab.state.value})
            return lab.summary()

    def list_labs(self) -> list[LabSummary]:
        with self._session(write=False) as cache:
            return [lab.summary() for lab in cache]

    def list_apps(self, name: str) -> LabConfig | None:
        with self._session(write=False) as cache:
            return cache.search(name).config

    def expand(self, name: str, path=None) -> Path:
        with self._session() as cache:
            lab = cache.search(name)
            target = Path(path).absolute() if path else expanded_dir() / f"{name}-{b58_fuuid()}"
            return lab.expand(target)

    def repack(self, name: str) -> None:
        with self._session() as cache:
            cache.search(name).repack()

    def restore(self, name: str) -> None:
        with self._session() as cache:
            cache.search(name).restore()

    def discard(self, name: str) -> None:
        with self._session() as cache:
            cache.search(name).discard()

    def mount(self, name: str, letter: str) -> str:
        with self._session() as cache:
            return cache.search(name).mount(letter)

    def unmount(self, name: str) -> None:
        with self._session() as cache:
            cache.search(name).unmount()

    def change_image(self, name: str, image) -> None:
        with self._session() as cache:
            cache.search(name).change_image(Path(image).absolute())

    def update_config(self, name: str, config) -> LabConfig:
        with self._session() as cache:
            return cache.search(name).read_config(config)

    def remove(self, name: str) -> None:
        with self._session() as cache:
            lab = cache.search(name)
            lab.require_unmounted("remove")
            cache.remove(name)
            if lab.is_expanded:
                logger.warning({"event": "expanded_files_left", "lab": name, "path": lab.expanded_path})
            logger.info({"event": "lab_removed", "lab": name})

    def run(
        self,
        name: str,
        app: str | None = None,
        args: Sequence[str] = (),
        drive_letter: str | None = None,
    ):
        """Launch an app, mounting first when a drive letter is given.

        A mount made here is written to the cache before launching, so it
        stays recorded when the launch fails. The cache is unlocked before
        the process handle is returned; waiting on it is the caller's job.
        """
        with self._session() as cache:
            lab = cache.search(name)
            if drive_letter is not None:
                lab.mount(drive_letter)
                cache.write()
            return lab.run(app, list(args))


@dataclass(frozen=True)
class Import:
    config: str
    image: Optional[str] = None
    path: Optional[str] = None


@dataclass(frozen=True)
class ListLabs:
    pass


@dataclass(frozen=True)
class ListApps:
    name: str


@dataclass(frozen=True)
class Run:
    name: str
    app: Optional[str] = None
    args: tuple[str, ...] = ()
    drive_letter: Optional[str] = None


@dataclass(frozen=True)
class Change:
    name: str
    image: str


@dataclass(frozen=True)
class Update:
    name: str
    config: str


@dataclass(frozen=True)
class Expand:
    name: str
    path: Optional[str] = None


@dataclass(frozen=True)
class Repack:
    name: str


@dataclass(frozen=True)
class Restore:
    name: str


@dataclass(frozen=True)
class Discard:
    name: str


@dataclass(frozen=True)
class Remove:
    name: str


@dataclass(frozen=True)
class Mount:
    name: str
    drive_letter: str


@dataclass(frozen=True)
class Unmount:
    name: str


Verb = Union[
    Import, ListLabs, ListApps, Run, Change, Update, Expand,
    Repack, Restore, Discard, Remove, Mount, Unmount,
]


def execute(verb: Verb, manager: Manager | None = None):
    """Dispatch a verb to the matching manager call."""
    manager = manager or Manager()
    logger.debug({"event": "verb", "verb": type(verb).__name__})

    match verb:
        case Import(config, image, path):
            return manager.import_lab(config, image=image, path=path)
        case ListLabs():
            return manager.list_labs()
        case ListApps(name):
            return manager.list_apps(name)
        case Run(name, app, args, drive_letter):
            return manager.run(name, app, args, drive_letter)
        case Change(name, image):
            return manager.change_image(name, image)
        case Update(name, config):
            return manager.update_config(name, config)
        case Expand(name, path):
            return manager.expand(name, path)
        case Repack(name):
            return manager.repack(name)
        case Restore(name):
            return manager.restore(name)
        case Discard(name):
            return manager.discard(name)
        case Remove(name):
            return manager.remove(name)
        case Mount(name, drive_letter):
            return manager.mount(name, drive_letter)
        case Unmount(name):
            return manager.unmount(name)
        case _:
            raise TypeError(f"Unknown verb: {verb!r}")
