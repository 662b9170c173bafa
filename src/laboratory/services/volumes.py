"""Drive letter binding.

Windows binds letters with ``subst``. Elsewhere a letter is a symlink in
the volumes directory that points at the expanded lab.
"""
import ntpath
import os
import subprocess
from pathlib import Path

from laboratory.config import volumes_dir
from laboratory.errors import VolumeError
from laboratory.logging import get_logger

logger = get_logger(__name__)


def normalize_letter(letter: str) -> str:
    """Validate a drive letter and return it uppercase without a colon."""
    value = (letter or "").strip().rstrip(":").upper()
    if len(value) != 1 or not ("A" <= value <= "Z"):
        raise VolumeError(f"Invalid drive letter: {letter!r}", details={"letter": letter})
    return value


class SubstVolumes:
    """Bind letters with the Windows ``subst`` command."""

    def bind(self, letter: str, path: Path) -> bool:
        result = subprocess.run(
            ["subst", f"{letter}:", str(path)], capture_output=True, text=True
        )
        logger.debug({"event": "subst_add", "letter": letter, "path": str(path), "returncode": result.returncode, "stderr": result.stderr})
        return result.returncode == 0

    def unbind(self, letter: str) -> bool:
        result = subprocess.run(
            ["subst", f"{letter}:", "/D"], capture_output=True, text=True
        )
        logger.debug({"event": "subst_del", "letter": letter, "returncode": result.returncode, "stderr": result.stderr})
        return result.returncode == 0

    def token(self, letter: str) -> str:
        return letter

    def path(self, letter: str, relative: str) -> str:
        return ntpath.join(f"{letter}:\\", relative)


class LinkVolumes:
    """Bind letters as symlinks under a volumes directory."""

    def __init__(self, root: Path | None = None):
        self.root = Path(root) if root else volumes_dir()

    def _link(self, letter: str) -> Path:
        return self.root / letter

    def bind(self, letter: str, path: Path) -> bool:
        link = self._link(letter)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            if link.is_symlink() or link.exists():
                logger.debug({"event": "link_busy", "letter": letter, "link": str(link)})
                return False
            link.symlink_to(Path(path).resolve(), target_is_directory=True)
        except OSError as e:
            logger.debug({"event": "link_failed", "letter": letter, "error": str(e)})
            return False
        return True

    def unbind(self, letter: str) -> bool:
        link = self._link(letter)
        if not link.is_symlink():
            return False
        try:
            link.unlink()
        except OSError as e:
            logger.debug({"event": "unlink_failed", "letter": letter, "error": str(e)})
            return False
        return True

    def token(self, letter: str) -> str:
        return str(self._link(letter))

    def path(self, letter: str, relative: str) -> str:
        return os.path.join(self.token(letter), relative)


def default_volumes():
    """Pick the volume mechanism for the current platform."""
    match os.name:
        case "nt":
            return SubstVolumes()
        case _:
            return LinkVolumes()
