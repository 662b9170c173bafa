"""Environment token substitution for app launches."""

from typing import Iterable, Mapping

from laboratory.errors import NotFoundError
from laboratory.types import Env

MOUNT_TOKEN = "$mnt$"
SHARE_TOKEN = "$sm$"


def resolve_env(env: Env, mount_token: str, host_env: Mapping[str, str]) -> str:
    """Resolve a single env value."""
    if env.value == SHARE_TOKEN:
        if env.key not in host_env:
            raise NotFoundError(
                f"Host variable {env.key} is not set",
                details={"variable": env.key},
            )
        return host_env[env.key]

    return env.value.replace(MOUNT_TOKEN, mount_token)


def resolve_envs(
    envs: Iterable[Env], mount_token: str, host_env: Mapping[str, str]
) -> dict[str, str]:
    """Resolve an app's env list into a key -> value mapping.

    ``$sm$`` shares the host's variable of the same key and fails when the
    host does not define it. ``$mnt$`` anywhere in a value is replaced with
    ``mount_token``. Later entries win on duplicate keys.
    """
    return {env.key: resolve_env(env, mount_token, host_env) for env in envs}
