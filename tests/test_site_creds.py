"""Tests for credential lookup and appliance selection."""

import pytest

from hpe_mgmt_utility.errors import ApplianceSelectionError, RemoteSessionError
from run_step import site_creds
from run_step.site_creds import connect_first, resolve_credentials, select_appliance


def test_select_appliance_explicit_wins() -> None:
    assert select_appliance("ov9", ["ov1", "ov2"]) == "ov9"


def test_select_appliance_single_configured() -> None:
    assert select_appliance(None, ["ov1"]) == "ov1"


def test_select_appliance_none_configured() -> None:
    with pytest.raises(ApplianceSelectionError, match="none configured"):
        select_appliance(None, [])


def test_select_appliance_ambiguous() -> None:
    with pytest.raises(ApplianceSelectionError, match="ov1, ov2"):
        select_appliance(None, ["ov1", "ov2"])


def test_connect_first_falls_through_to_working_credential() -> None:
    attempts = []

    def factory(host, user, pw):
        attempts.append(user)
        if user != "admin":
            raise RemoteSessionError(host, "401")
        return (host, user)

    result = connect_first(factory, "ov1", [("Administrator", "a"), ("admin", "b"), ("other", "c")])

    assert result == ("ov1", "admin")
    assert attempts == ["Administrator", "admin"]


def test_connect_first_reraises_last_failure() -> None:
    def factory(host, user, pw):
        raise RemoteSessionError(host, f"rejected {user}")

    with pytest.raises(RemoteSessionError, match="rejected second"):
        connect_first(factory, "ov1", [("first", "a"), ("second", "b")])


def test_connect_first_without_credentials() -> None:
    with pytest.raises(RemoteSessionError, match="No credentials"):
        connect_first(lambda *args: None, "ov1", [])


def test_resolve_credentials_command_line_wins(monkeypatch) -> None:
    monkeypatch.setattr(site_creds, "get_site_credentials", pytest.fail)

    assert resolve_credentials("ov1", "admin", "secret") == [("admin", "secret")]


def test_resolve_credentials_prompts_when_keyring_empty(monkeypatch) -> None:
    monkeypatch.setattr(site_creds, "get_site_credentials", lambda service, users=None: [])

    creds = resolve_credentials("ov1", "admin", prompt=lambda text: "typed")

    assert creds == [("admin", "typed")]


def test_resolve_credentials_uses_keyring_order(monkeypatch) -> None:
    stored = [("Administrator", "a"), ("admin", "b")]
    monkeypatch.setattr(site_creds, "get_site_credentials", lambda service, users=None: stored)

    assert resolve_credentials("ov1") == stored


def test_resolve_credentials_nothing_stored(monkeypatch) -> None:
    monkeypatch.setattr(site_creds, "get_site_credentials", lambda service, users=None: [])

    with pytest.raises(RemoteSessionError, match="No stored credentials"):
        resolve_credentials("ov1")


def test_get_site_credentials_skips_missing_users(monkeypatch) -> None:
    passwords = {("oa-lab", "Administrator"): "pw1", ("oa-lab", "opsadmin"): "pw2"}
    monkeypatch.setattr(site_creds, "_bind_keyring", lambda: None)
    monkeypatch.setattr(site_creds.keyring, "get_password", lambda service, user: passwords.get((service, user)))

    creds = site_creds.get_site_credentials("oa-lab", ["Administrator", "admin", "opsadmin"])

    assert creds == [("Administrator", "pw1"), ("opsadmin", "pw2")]


def test_bind_keyring_requires_master_file(tmp_path) -> None:
    with pytest.raises(RemoteSessionError, match="Master file not found"):
        site_creds._bind_keyring(str(tmp_path / "missing"), str(tmp_path / "crypted_pass.cfg"))
