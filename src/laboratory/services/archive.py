"""Lab image packing and unpacking."""
import os
import tarfile
import tempfile
from pathlib import Path

from laboratory.errors import IOFailureError
from laboratory.logging import get_logger

logger = get_logger(__name__)


class TarArchiver:
    """Gzip-compressed tar images."""

    def pack(self, source: Path, image: Path) -> None:
        """Pack the contents of ``source`` into ``image``.

        The image is written next to its destination and swapped in with
        ``os.replace`` so a failed pack never leaves a truncated image.
        """
        source, image = Path(source), Path(image)
        if not source.is_dir():
            raise IOFailureError(
                f"Cannot pack {source}: not a directory", details={"path": str(source)}
            )

        image.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{image.name}.", suffix=".tmp", dir=image.parent)
        os.close(fd)
        tmp_path = Path(tmp_name)

        try:
            with tarfile.open(tmp_path, "w:gz") as archive:
                for child in sorted(source.iterdir()):
                    archive.add(child, arcname=child.name)
            os.replace(tmp_path, image)
        except (OSError, tarfile.TarError) as e:
            tmp_path.unlink(missing_ok=True)
            logger.error({"event": "pack_failed", "source": str(source), "image": str(image), "error": str(e)})
            raise IOFailureError(
                f"Failed to pack {source} into {image}: {e}",
                details={"path": str(source), "image": str(image)},
            ) from e

        logger.info({"event": "image_packed", "source": str(source), "image": str(image)})

    def unpack(self, image: Path, target: Path) -> None:
        """Unpack ``image`` into the existing directory ``target``."""
        image, target = Path(image), Path(target)
        try:
            with tarfile.open(image, "r:gz") as archive:
                archive.extractall(target, filter="data")
        except (OSError, tarfile.TarError) as e:
            logger.error({"event": "unpack_failed", "image": str(image), "target": str(target), "error": str(e)})
            raise IOFailureError(
                f"Failed to unpack {image} into {target}: {e}",
                details={"image": str(image), "path": str(target)},
            ) from e

        logger.info({"event": "image_unpacked", "image": str(image), "target": str(target)})
