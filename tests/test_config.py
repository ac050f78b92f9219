"""Tests for configuration loading and persistence."""

from __future__ import annotations

from gogcli import config, paths


def test_defaults_without_file():
    assert config.get_config() == {"default_from": None, "message_id_domain": None}
    assert config.get_default_from() is None
    assert config.get_message_id_domain() is None


def test_set_and_get():
    config.set_config_value("default_from", "Me <me@x.com>")
    config.set_config_value("message_id_domain", "x.com")
    assert config.get_default_from() == "Me <me@x.com>"
    assert config.get_message_id_domain() == "x.com"
    assert paths.CONFIG_FILE.read_text().endswith("\n")


def test_clear_value():
    config.set_config_value("default_from", "Me <me@x.com>")
    config.set_config_value("default_from", None)
    assert config.get_default_from() is None
    assert "default_from" not in paths.CONFIG_FILE.read_text()


def test_corrupted_file_ignored():
    paths.CONFIG_DIR.mkdir(parents=True)
    paths.CONFIG_FILE.write_text("{broken")
    assert config.get_config()["default_from"] is None


def test_non_object_file_ignored():
    paths.CONFIG_DIR.mkdir(parents=True)
    paths.CONFIG_FILE.write_text("[1, 2]")
    assert config.get_config() == config.DEFAULT_CONFIG
