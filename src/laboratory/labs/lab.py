"""Lab lifecycle state machine.

A lab lives in one of three states:

* packaged: only the image exists
* expanded: the image is unpacked into ``expanded_path``
* mounted: ``expanded_path`` is additionally bound to ``drive_letter``

Every operation checks its precondition before touching the filesystem or
the volume service, so a rejected call leaves the lab unmodified.
"""
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence

from laboratory.errors import (
    InvalidStateError,
    IOFailureError,
    NotFoundError,
    ParseError,
    VolumeError,
)
from laboratory.labs.env import resolve_envs
from laboratory.labs.manifest import config_from_record, config_to_record, read_manifest
from laboratory.logging import get_logger
from laboratory.services import Services, default_services
from laboratory.services.volumes import normalize_letter
from laboratory.types import App, LabConfig, LabState, LabSummary

logger = get_logger(__name__)


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        raise IOFailureError(f"Failed to delete {path}: {e}", details={"path": str(path)}) from e


def _clear_dir(path: Path) -> None:
    try:
        for child in path.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()
    except OSError as e:
        raise IOFailureError(f"Failed to clear {path}: {e}", details={"path": str(path)}) from e


@dataclass
class Lab:
    """One managed environment and its on-disk/OS representations."""
    name: Optional[str] = None
    image_path: Optional[str] = None
    expanded_path: Optional[str] = None
    drive_letter: Optional[str] = None
    config: Optional[LabConfig] = None
    services: Services = field(default_factory=default_services, repr=False, compare=False)

    @classmethod
    def from_image(cls, path, services: Services | None = None) -> "Lab":
        """New packaged lab backed by an image file."""
        return cls(image_path=str(path), services=services or default_services())

    @classmethod
    def from_directory(cls, path, services: Services | None = None) -> "Lab":
        """New expanded lab with no image, created from an existing directory."""
        directory = Path(path)
        if not directory.is_dir():
            raise IOFailureError(f"{directory} is not a directory", details={"path": str(directory)})
        return cls(expanded_path=str(directory), services=services or default_services())

    @property
    def state(self) -> LabState:
        if self.expanded_path is None:
            return LabState.PACKAGED
        if self.drive_letter is None:
            return LabState.EXPANDED
        return LabState.MOUNTED

    @property
    def is_expanded(self) -> bool:
        return self.expanded_path is not None

    @property
    def is_mounted(self) -> bool:
        return self.drive_letter is not None

    def _details(self, **extra) -> dict:
        return {"lab": self.name, "state": self.state.value, **extra}

    def require_unmounted(self, operation: str) -> None:
        if self.is_mounted:
            raise InvalidStateError(
                f"Cannot {operation} lab {self.name} while mounted at {self.drive_letter}",
                details=self._details(operation=operation, letter=self.drive_letter),
            )

    def _require_expanded(self, operation: str) -> Path:
        if not self.is_expanded:
            raise InvalidStateError(
                f"Cannot {operation} lab {self.name}: not expanded",
                details=self._details(operation=operation),
            )
        return Path(self.expanded_path)

    def _require_image(self, operation: str) -> Path:
        if self.image_path is None:
            raise InvalidStateError(
                f"Cannot {operation} lab {self.name}: no image configured",
                details=self._details(operation=operation),
            )
        return Path(self.image_path)

    def read_config(self, path) -> LabConfig:
        """Load the manifest at ``path`` as this lab's config."""
        config = read_manifest(path)
        if self.name is not None and config.name != self.name:
            raise InvalidStateError(
                f"Manifest {path} names lab {config.name}, expected {self.name}; renaming is not supported",
                details=self._details(path=str(path), manifest_name=config.name),
            )
        self.name = config.name
        self.config = config
        return config

    def expand(self, target_dir) -> Path:
        """Unpack the image into ``target_dir``."""
        if self.is_expanded:
            raise InvalidStateError(
                f"Lab {self.name} is already expanded at {self.expanded_path}",
                details=self._details(path=self.expanded_path),
            )
        image = self._require_image("expand")
        target = Path(target_dir)

        created = not target.exists()
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailureError(f"Cannot create {target}: {e}", details={"path": str(target)}) from e
        if not created and any(target.iterdir()):
            raise IOFailureError(
                f"Cannot expand lab {self.name} into non-empty directory {target}",
                details=self._details(path=str(target)),
            )

        try:
            self.services.archiver.unpack(image, target)
        except IOFailureError:
            if created:
                shutil.rmtree(target, ignore_errors=True)
            else:
                _clear_dir(target)
            raise

        self.expanded_path = str(target)
        logger.info({"event": "lab_expanded", "lab": self.name, "image": str(image), "path": str(target)})
        return target

    def repack(self) -> None:
        """Pack the expanded directory back into the image and delete it."""
        self.require_unmounted("repack")
        expanded = self._require_expanded("repack")
        image = self._require_image("repack")

        self.services.archiver.pack(expanded, image)
        _remove_tree(expanded)
        self.expanded_path = None
        logger.info({"event": "lab_repacked", "lab": self.name, "image": str(image)})

    def restore(self) -> None:
        """Reset the expanded directory to the image contents."""
        self.require_unmounted("restore")
        expanded = self._require_expanded("restore")
        image = self._require_image("restore")

        _clear_dir(expanded)
        self.services.archiver.unpack(image, expanded)
        logger.info({"event": "lab_restored", "lab": self.name, "path": str(expanded)})

    def discard(self) -> None:
        """Delete the expanded directory without repacking."""
        self.require_unmounted("discard")
        expanded = self._require_expanded("discard")

        _remove_tree(expanded)
        self.expanded_path = None
        logger.info({"event": "lab_discarded", "lab": self.name, "path": str(expanded)})

    def mount(self, letter: str) -> str:
        """Bind ``letter`` to the expanded directory."""
        letter = normalize_letter(letter)
        expanded = self._require_expanded("mount")
        volumes = self.services.volumes

        if self.drive_letter == letter:
            logger.debug({"event": "lab_already_mounted", "lab": self.name, "letter": letter})
            return letter

        previous = self.drive_letter
        if previous is not None:
            self.unmount()

        if not volumes.bind(letter, expanded):
            if previous is not None and volumes.bind(previous, expanded):
                self.drive_letter = previous
            raise VolumeError(
                f"Failed to bind {letter}: to lab {self.name}",
                details=self._details(letter=letter, path=str(expanded)),
            )

        self.drive_letter = letter
        logger.info({"event": "lab_mounted", "lab": self.name, "letter": letter, "path": str(expanded)})
        return letter

    def unmount(self) -> None:
        """Release the bound drive letter."""
        if not self.is_mounted:
            raise InvalidStateError(
                f"Lab {self.name} is not mounted", details=self._details()
            )
        letter = self.drive_letter
        if not self.services.volumes.unbind(letter):
            raise VolumeError(
                f"Failed to unbind {letter}: from lab {self.name}",
                details=self._details(letter=letter),
            )
        self.drive_letter = None
        logger.info({"event": "lab_unmounted", "lab": self.name, "letter": letter})

    def find_app(self, app_name: str | None) -> App:
        """Look up an app; with no name, the lab's only app."""
        if self.config is None:
            raise InvalidStateError(
                f"Lab {self.name} has no config loaded", details=self._details()
            )
        if app_name is None:
            if len(self.config.apps) == 1:
                return self.config.apps[0]
            raise NotFoundError(
                f"Lab {self.name} defines {len(self.config.apps)} apps, pick one",
                details=self._details(apps=[app.name for app in self.config.apps]),
            )
        app = self.config.find_app(app_name)
        if app is None:
            raise NotFoundError(
                f"App {app_name} not found in lab {self.name}",
                details=self._details(app=app_name),
            )
        return app

    def run(
        self,
        app_name: str | None,
        extra_args: Sequence[str] = (),
        host_env: Mapping[str, str] | None = None,
    ):
        """Launch an app from the mounted volume and return its process handle."""
        if not self.is_mounted:
            raise InvalidStateError(
                f"Cannot run from lab {self.name}: not mounted", details=self._details()
            )
        app = self.find_app(app_name)
        volumes = self.services.volumes
        letter = self.drive_letter

        env = resolve_envs(
            app.envs,
            volumes.token(letter),
            os.environ if host_env is None else host_env,
        )
        command = volumes.path(letter, app.command)
        cwd = volumes.path(letter, app.work_dir)

        process = self.services.launcher.launch([command, *extra_args], env, cwd)
        logger.info({"event": "app_launched", "lab": self.name, "app": app.name, "command": command, "cwd": cwd})
        return process

    def change_image(self, new_path) -> None:
        """Point a packaged lab at a different image file."""
        self.require_unmounted("change the image of")
        if self.is_expanded:
            raise InvalidStateError(
                f"Cannot change the image of lab {self.name} while expanded at {self.expanded_path}",
                details=self._details(path=self.expanded_path),
            )
        old = self.image_path
        self.image_path = str(new_path)
        logger.info({"event": "lab_image_changed", "lab": self.name, "old": old, "new": self.image_path})

    def summary(self) -> LabSummary:
        return LabSummary(
            name=self.name,
            state=self.state,
            image_path=self.image_path,
            expanded_path=self.expanded_path,
            drive_letter=self.drive_letter,
            apps=tuple(app.name for app in self.config.apps) if self.config else (),
        )

    def to_record(self) -> dict:
        """Serialize to a TOML-ready table, omitting absent fields."""
        record = {"name": self.name}
        for key in ("image_path", "expanded_path", "drive_letter"):
            value = getattr(self, key)
            if value is not None:
                record[key] = value
        if self.config is not None:
            record["config"] = config_to_record(self.config)
        return record

    @classmethod
    def from_record(cls, record, services: Services | None = None) -> "Lab":
        if not isinstance(record, dict):
            raise ParseError("Cache entries must be tables")
        name = record.get("name")
        if not isinstance(name, str) or not name:
            raise ParseError("Cache entry without a name", details={"record": record})

        values = {}
        for key in ("image_path", "expanded_path", "drive_letter"):
            value = record.get(key)
            if value is not None and not isinstance(value, str):
                raise ParseError(
                    f"Cache entry {name}: '{key}' must be a string",
                    details={"lab": name, "field": key},
                )
            values[key] = value

        if values["drive_letter"] is not None and values["expanded_path"] is None:
            raise ParseError(
                f"Cache entry {name} is mounted but not expanded",
                details={"lab": name, "letter": values["drive_letter"]},
            )
        if values["drive_letter"] is not None:
            try:
                values["drive_letter"] = normalize_letter(values["drive_letter"])
            except VolumeError as e:
                raise ParseError(
                    f"Cache entry {name}: {e}", details={"lab": name, "field": "drive_letter"}
                ) from e

        config = None
        if "config" in record:
            config = config_from_record(record["config"], where=f"cache entry {name}")

        return cls(
            name=name,
            config=config,
            services=services or default_services(),
            **values,
        )
