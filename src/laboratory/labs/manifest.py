"""Lab manifest parsing and (de)serialization of config records."""

from pathlib import Path
from typing import Any

import tomli

from laboratory.errors import IOFailureError, ParseError
from laboratory.logging import get_logger
from laboratory.types import App, Env, LabConfig

logger = get_logger(__name__)


def _require_str(record: dict, field: str, where: str) -> str:
    value = record.get(field)
    if not isinstance(value, str) or not value:
        raise ParseError(
            f"{where}: '{field}' must be a non-empty string",
            details={"field": field, "where": where},
        )
    return value


def parse_envs(raw: Any, where: str) -> tuple[Env, ...]:
    """Parse envs given either as [{key, value}, ...] or as a table."""
    if raw is None:
        return ()

    if isinstance(raw, dict):
        items = list(raw.items())
    elif isinstance(raw, list):
        items = []
        for entry in raw:
            if not isinstance(entry, dict):
                raise ParseError(f"{where}: env entries must be tables", details={"where": where})
            items.append((_require_str(entry, "key", where), entry.get("value")))
    else:
        raise ParseError(f"{where}: 'envs' must be a table or an array", details={"where": where})

    envs = []
    for key, value in items:
        if not isinstance(value, str):
            raise ParseError(
                f"{where}: env {key} must have a string value",
                details={"where": where, "key": key},
            )
        envs.append(Env(key=key, value=value))
    return tuple(envs)


def parse_app(record: Any, where: str) -> App:
    if not isinstance(record, dict):
        raise ParseError(f"{where}: app entries must be tables", details={"where": where})

    name = _require_str(record, "name", where)
    app_where = f"{where}: app {name}"
    work_dir = record.get("work_dir", ".")
    if not isinstance(work_dir, str):
        raise ParseError(f"{app_where}: 'work_dir' must be a string", details={"where": app_where})

    return App(
        name=name,
        command=_require_str(record, "command", app_where),
        work_dir=work_dir,
        envs=parse_envs(record.get("envs"), app_where),
    )


def config_from_record(record: Any, where: str = "manifest") -> LabConfig:
    """Build a LabConfig from a decoded TOML table."""
    if not isinstance(record, dict):
        raise ParseError(f"{where}: config must be a table", details={"where": where})

    name = _require_str(record, "name", where)
    raw_apps = record.get("apps", [])
    if not isinstance(raw_apps, list):
        raise ParseError(f"{where}: 'apps' must be an array of tables", details={"where": where})

    apps = tuple(parse_app(raw, where) for raw in raw_apps)

    seen = set()
    for app in apps:
        if app.name in seen:
            raise ParseError(
                f"{where}: duplicate app {app.name}",
                details={"where": where, "app": app.name},
            )
        seen.add(app.name)

    return LabConfig(name=name, apps=apps)


def config_to_record(config: LabConfig) -> dict:
    """Inverse of config_from_record, envs kept as an ordered array."""
    return {
        "name": config.name,
        "apps": [
            {
                "name": app.name,
                "command": app.command,
                "work_dir": app.work_dir,
                "envs": [{"key": env.key, "value": env.value} for env in app.envs],
            }
            for app in config.apps
        ],
    }


def read_manifest(path: Path) -> LabConfig:
    """Read and parse a lab manifest file."""
    path = Path(path)
    try:
        with open(path, "rb") as f:
            record = tomli.load(f)
    except tomli.TOMLDecodeError as e:
        raise ParseError(
            f"Malformed manifest {path}: {e}", details={"path": str(path)}
        ) from e
    except OSError as e:
        raise IOFailureError(
            f"Cannot read manifest {path}: {e}", details={"path": str(path)}
        ) from e

    config = config_from_record(record, where=str(path))
    logger.debug({"event": "manifest_read", "path": str(path), "lab": config.name, "apps": len(config.apps)})
    return config
