"""Process launching for lab apps."""

import subprocess

from laboratory.errors import LaunchError
from laboratory.logging import get_logger

logger = get_logger(__name__)


class ProcessLauncher:
    """Start programs with ``subprocess.Popen``."""

    def launch(self, argv: list[str], env: dict[str, str], cwd: str) -> subprocess.Popen:
        logger.debug({"event": "launch", "argv": argv, "cwd": cwd, "env_keys": sorted(env)})
        try:
            return subprocess.Popen(argv, env=env, cwd=cwd)
        except OSError as e:
            raise LaunchError(
                f"Failed to launch {argv[0]}: {e}",
                details={"command": argv[0], "cwd": cwd},
            ) from e


def wait_for(process) -> int:
    """Block until ``process`` exits; non-zero exit codes raise LaunchError."""
    returncode = process.wait()
    logger.debug({"event": "process_exited", "pid": process.pid, "returncode": returncode})
    if returncode != 0:
        raise LaunchError(
            f"Process exited with code {returncode}",
            details={"pid": process.pid, "returncode": returncode},
        )
    return returncode
