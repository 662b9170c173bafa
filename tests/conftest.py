import logging
from pathlib import Path

import pytest

from laboratory.errors import LaunchError
from laboratory.manager import Manager
from laboratory.services import Services
from laboratory.services.archive import TarArchiver
from laboratory.services.volumes import SubstVolumes

FIXTURES = Path(__file__).parent.parent / "fixtures_data"


class FakeVolumes(SubstVolumes):
    """Drive-letter paths without touching the OS; records every call."""

    def __init__(self):
        self.calls = []
        self.bound = {}
        self.fail_bind = set()
        self.fail_unbind = set()

    def bind(self, letter, path):
        self.calls.append(("bind", letter, str(path)))
        if letter in self.fail_bind or letter in self.bound:
            return False
        self.bound[letter] = str(path)
        return True

    def unbind(self, letter):
        self.calls.append(("unbind", letter))
        if letter in self.fail_unbind or letter not in self.bound:
            return False
        del self.bound[letter]
        return True


class FakeProcess:
    def __init__(self, returncode=0):
        self.pid = 4242
        self.returncode = returncode
        self.waited = False

    def wait(self):
        self.waited = True
        return self.returncode


class FakeLauncher:
    def __init__(self):
        self.launches = []
        self.returncode = 0
        self.fail = False

    def launch(self, argv, env, cwd):
        self.launches.append({"argv": argv, "env": env, "cwd": cwd})
        if self.fail:
            raise LaunchError(f"Failed to launch {argv[0]}", details={"command": argv[0]})
        return FakeProcess(self.returncode)


@pytest.fixture(autouse=True)
def lab_home(tmp_path, monkeypatch):
    """Keep default data/cache locations inside the test's tmp dir"""
    home = tmp_path / "home"
    monkeypatch.setenv("LABORATORY_HOME", str(home))
    monkeypatch.delenv("LABORATORY_CACHE", raising=False)
    return home


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers bound to streams a test may have closed"""
    yield
    app_logger = logging.getLogger("laboratory")
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
    app_logger.propagate = True


@pytest.fixture
def fixture_path() -> Path:
    return FIXTURES / "demo"


@pytest.fixture
def volumes():
    return FakeVolumes()


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def services(volumes, launcher) -> Services:
    return Services(archiver=TarArchiver(), volumes=volumes, launcher=launcher)


@pytest.fixture
def demo_image(tmp_path, fixture_path) -> Path:
    """Image built from fixtures_data/demo/image"""
    image = tmp_path / "images" / "demo.img"
    TarArchiver().pack(fixture_path / "image", image)
    return image


@pytest.fixture
def cache_file(tmp_path) -> Path:
    return tmp_path / "state" / "Cache.toml"


@pytest.fixture
def manager(cache_file, services) -> Manager:
    return Manager(cache_file, services)


def tree(root: Path) -> dict:
    """Map of relative path -> file bytes under root"""
    return {
        str(p.relative_to(root)).replace("\\", "/"): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


@pytest.fixture
def read_tree():
    return tree
