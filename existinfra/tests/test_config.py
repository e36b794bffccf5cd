import logging

import pytest
import yaml
from pydantic import ValidationError

from existinfra.config import Settings, get_settings, set_settings
from existinfra.logging import configure_logging
from existinfra.models import Node
from existinfra.plan.recipe import NodeType
from existinfra.plan.resources import PkgType


def test_defaults():
    settings = Settings()
    assert settings.executor.max_workers == 4
    assert settings.executor.rollback is False
    assert settings.ssh.user == "root"
    assert settings.controller.group == "cluster.weave.works"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("EXISTINFRA_MAX_WORKERS", "2")
    monkeypatch.setenv("EXISTINFRA_ROLLBACK", "yes")
    monkeypatch.setenv("EXISTINFRA_SSH_USER", "centos")
    settings = Settings()
    assert settings.executor.max_workers == 2
    assert settings.executor.rollback is True
    assert settings.ssh.user == "centos"


def test_load_yaml_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"executor": {"max_workers": 8, "rollback": True}, "ssh": {"port": 2222}}))
    settings = Settings.load(path)
    assert settings.executor.max_workers == 8
    assert settings.executor.rollback is True
    assert settings.ssh.port == 2222


def test_missing_explicit_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Settings.load(tmp_path / "nope.yaml")


def test_invalid_workers():
    with pytest.raises(ValidationError):
        Settings(executor={"max_workers": 0})


def test_save_round_trip(tmp_path):
    path = tmp_path / "out" / "config.yaml"
    Settings(executor={"max_workers": 3}).save(path)
    assert Settings.load(path).executor.max_workers == 3


def test_get_settings_caches(default_settings):
    assert get_settings() is default_settings
    set_settings(None)
    assert get_settings() is not default_settings


def test_configure_logging_debug():
    logger = configure_logging(Settings(), debug=True)
    try:
        assert logger.level == logging.DEBUG
        assert logging.getLogger("existinfra.plan.executor").isEnabledFor(logging.DEBUG)
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)


def test_node_from_inventory_entry():
    node = Node.from_dict({"name": "master-0", "host": "10.0.0.5", "nodeType": "original-master", "pkgType": "deb"})
    assert node.node_type is NodeType.ORIGINAL_MASTER
    assert node.pkg_type is PkgType.DEB
    assert node.port == 22


def test_node_requires_host():
    with pytest.raises(ValueError):
        Node.from_dict({"name": "master-0"})
