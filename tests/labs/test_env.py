import pytest

from laboratory.errors import NotFoundError
from laboratory.labs.env import resolve_envs
from laboratory.types import Env


def test_mount_token_substitution():
    envs = [Env("PATH", "$mnt$:\\bin")]
    assert resolve_envs(envs, "E", {}) == {"PATH": "E:\\bin"}


def test_share_from_host():
    envs = [Env("TOKEN", "$sm$")]
    assert resolve_envs(envs, "E", {"TOKEN": "abc123"}) == {"TOKEN": "abc123"}


def test_every_mount_token_replaced():
    envs = [Env("PATHS", "$mnt$:\\a;$mnt$:\\b")]
    assert resolve_envs(envs, "F", {}) == {"PATHS": "F:\\a;F:\\b"}


def test_share_token_only_as_exact_value():
    """$sm$ inside a longer value is left alone"""
    envs = [Env("X", "prefix-$sm$")]
    assert resolve_envs(envs, "E", {"X": "host"}) == {"X": "prefix-$sm$"}


def test_literal_values_pass_through():
    envs = [Env("LANG", "C")]
    assert resolve_envs(envs, "E", {"LANG": "en_US"}) == {"LANG": "C"}


def test_missing_host_variable_fails():
    with pytest.raises(NotFoundError) as exc:
        resolve_envs([Env("TOKEN", "$sm$")], "E", {})
    assert exc.value.details == {"variable": "TOKEN"}


def test_last_write_wins():
    envs = [Env("A", "1"), Env("B", "2"), Env("A", "3")]
    assert resolve_envs(envs, "E", {}) == {"A": "3", "B": "2"}
