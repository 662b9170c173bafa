from laboratory.services import Archiver, Launcher, Services, Volumes, default_services
from laboratory.services.volumes import LinkVolumes, SubstVolumes


def test_default_services_match_contracts():
    services = default_services()
    assert isinstance(services.archiver, Archiver)
    assert isinstance(services.volumes, Volumes)
    assert isinstance(services.launcher, Launcher)


def test_volume_backends_match_contract(tmp_path):
    assert isinstance(SubstVolumes(), Volumes)
    assert isinstance(LinkVolumes(tmp_path), Volumes)


def test_substituted_backends_match_contracts(services):
    assert isinstance(services, Services)
    assert isinstance(services.volumes, Volumes)
    assert isinstance(services.launcher, Launcher)
