"""Tests for the shared CLI plumbing."""

import argparse

import pytest

from hpe_mgmt_utility.errors import ApplianceSelectionError
from run_step import common
from run_step.common import add_report_args, connect_oneview


def _args(argv):
    parser = argparse.ArgumentParser()
    add_report_args(parser)
    return parser.parse_args(argv)


def test_report_args_defaults() -> None:
    args = _args([])

    assert args.appliance is None
    assert args.output_dir == "."
    assert args.console is False
    assert args.log_level == "INFO"


def test_report_args_output_and_console_are_exclusive() -> None:
    with pytest.raises(SystemExit):
        _args(["-o", "/tmp", "--console"])


def test_connect_oneview_explicit_appliance_skips_config(monkeypatch) -> None:
    monkeypatch.setattr(common, "load_site_table", pytest.fail)
    logins = []

    def factory(host, user, pw):
        logins.append((host, user, pw))
        return "session"

    result = connect_oneview(_args(["-a", "ov9", "-u", "admin", "-p", "pw"]), factory=factory)

    assert result == "session"
    assert logins == [("ov9", "admin", "pw")]


def test_connect_oneview_requires_single_configured_appliance(tmp_path) -> None:
    config = tmp_path / "sites.conf"
    config.write_text("[appliances]\nnames = ov1, ov2\n", encoding="utf-8")

    with pytest.raises(ApplianceSelectionError, match="--appliance"):
        connect_oneview(_args(["--config", str(config), "-u", "a", "-p", "b"]), factory=pytest.fail)
