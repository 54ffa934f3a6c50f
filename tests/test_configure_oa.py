"""Tests for Onboard Administrator provisioning."""

import ipaddress
from datetime import datetime

import pytest
from lxml import etree

from hpe_mgmt_utility.errors import ConfigurationError
from run_step import configure_oa
from run_step.configure_oa import OaProvisioner, bay_selection, derive_bay_addresses
from run_step.site_config import SiteSettings

ENCLOSURE_INFO = """
<Body><getEnclosureInfoResponse><enclosureInfo>
  <enclosureName>{name}</enclosureName><rackName>{rack}</rackName>
</enclosureInfo></getEnclosureInfoResponse></Body>
"""


class FakeOa:
    def __init__(self, enclosure_name="OA-0123456789", rack_name="UnnamedRack", oa_names=None,
                 existing_users=(), existing_groups=()):
        self.calls = []
        self.enclosure_name = enclosure_name
        self.rack_name = rack_name
        self.oa_names = oa_names or {1: "OA-A", 2: "OA-B"}
        self.existing_users = set(existing_users)
        self.existing_groups = set(existing_groups)

    def call(self, operation, **params):
        self.calls.append((operation, params))
        if operation == "getEnclosureInfo":
            return etree.fromstring(ENCLOSURE_INFO.format(name=self.enclosure_name, rack=self.rack_name))
        return etree.Element("Body")

    def get_text(self, operation, path, **params):
        self.calls.append((operation, params))
        if operation == "getOaNetworkInfo":
            return self.oa_names[params["bayNumber"]]
        if operation == "userExists":
            return "true" if params["username"] in self.existing_users else "false"
        if operation == "ldapGroupExists":
            return "true" if params["ldapGroup"] in self.existing_groups else "false"
        return ""

    def dump(self, operation, **params):
        return f"<{operation}Response/>\n"

    def operations(self):
        return [operation for operation, _params in self.calls]

    def params_of(self, operation):
        return [params for op, params in self.calls if op == operation]


def _site(**overrides):
    values = dict(
        name="lab",
        subnet=ipaddress.IPv4Network("10.0.0.0/24"),
        netmask="255.255.255.0",
        gateway="10.0.0.254",
        domain="lab.example.com",
        dns_servers=("10.0.10.10",),
        ntp_servers=("10.0.10.20", "10.0.10.21"),
        rack_name="LAB-R01",
        alertmail_server="10.0.10.25",
        power_delay_seconds=10,
        local_users=(("opsadmin", "ADMINISTRATOR"),),
        ldap_server="ldap.lab.example.com",
        ldap_search_contexts=("OU=Users,DC=lab",),
        ldap_groups=(("OA-Admins", "ADMINISTRATOR"),),
    )
    values.update(overrides)
    return SiteSettings(**values)


def _provisioner(oa, site=None, last_slot=4, passwords=None):
    passwords = {"opsadmin": "s3cret"} if passwords is None else passwords
    return OaProvisioner(oa, site or _site(), derive_bay_addresses("10.0.0.1", last_slot), "ENC01",
                         password_lookup=passwords.get)


def test_derive_bay_addresses() -> None:
    addresses = derive_bay_addresses("10.0.0.1", 4)

    assert addresses.oa1 == "10.0.0.1"
    assert addresses.oa2 == "10.0.0.2"
    assert addresses.interconnects == ["10.0.0.3", "10.0.0.4", "10.0.0.5", "10.0.0.6"]
    assert addresses.devices == ["10.0.0.7", "10.0.0.8", "10.0.0.9", "10.0.0.10"]


def test_derive_bay_addresses_full_enclosure_fits() -> None:
    addresses = derive_bay_addresses("10.0.0.233", 16)

    assert addresses.devices[-1] == "10.0.0.254"


def test_derive_bay_addresses_overflow() -> None:
    with pytest.raises(ConfigurationError, match="no room"):
        derive_bay_addresses("10.0.0.250", 4)


@pytest.mark.parametrize("last_slot", [0, 17])
def test_derive_bay_addresses_bad_slot(last_slot) -> None:
    with pytest.raises(ConfigurationError, match="last slot"):
        derive_bay_addresses("10.0.0.1", last_slot)


def test_derive_bay_addresses_bad_address() -> None:
    with pytest.raises(ConfigurationError, match="not an IPv4 address"):
        derive_bay_addresses("oa01", 4)


def test_bay_selection() -> None:
    selection = bay_selection(3)

    assert selection["bladeBays"] == {"blade": [1, 2, 3]}
    assert selection["interconnectTrayBays"] == {"interconnectTray": [1, 2, 3, 4]}


def test_set_names_renames_only_when_different() -> None:
    oa = FakeOa(enclosure_name="ENC01", rack_name="LAB-R01", oa_names={1: "ENC01-OA1", 2: "OA-B"})

    _provisioner(oa).set_names()

    assert "setEnclosureName" not in oa.operations()
    assert "setRackName" not in oa.operations()
    assert oa.params_of("setOaName") == [{"bayNumber": 2, "oaName": "ENC01-OA2"}]


def test_set_names_factory_defaults() -> None:
    oa = FakeOa()

    _provisioner(oa).set_names()

    assert oa.params_of("setEnclosureName") == [{"enclosureName": "ENC01"}]
    assert oa.params_of("setRackName") == [{"rackName": "LAB-R01"}]
    assert len(oa.params_of("setOaName")) == 2


def test_configure_power_staggers_device_bays() -> None:
    oa = FakeOa()

    _provisioner(oa, last_slot=3).configure_power()

    servers = oa.params_of("setPowerdelayServerSettings")[0]["powerdelaySettings"]["powerdelayBay"]
    assert [bay["delay"] for bay in servers] == [10, 20, 30]


def test_configure_bay_addressing_covers_every_bay() -> None:
    oa = FakeOa()

    _provisioner(oa, last_slot=2).configure_bay_addressing()

    bays = [(p["ebipaInfo"]["deviceType"], p["ebipaInfo"]["ipAddress"]) for p in oa.params_of("configureEbipaDev")]
    assert bays == [
        ("INTERCONNECT", "10.0.0.3"),
        ("INTERCONNECT", "10.0.0.4"),
        ("INTERCONNECT", "10.0.0.5"),
        ("INTERCONNECT", "10.0.0.6"),
        ("SERVER", "10.0.0.7"),
        ("SERVER", "10.0.0.8"),
    ]


def test_configure_users_adds_missing_user() -> None:
    oa = FakeOa()

    _provisioner(oa).configure_users()

    assert oa.params_of("addUser") == [{"username": "opsadmin", "password": "s3cret"}]
    assert oa.params_of("setUserBayAcl") == [{"username": "opsadmin", "acl": "ADMINISTRATOR"}]


def test_configure_users_existing_user_not_recreated() -> None:
    oa = FakeOa(existing_users={"opsadmin"})

    _provisioner(oa, passwords={}).configure_users()

    assert "addUser" not in oa.operations()
    assert "addUserBayAccess" in oa.operations()


def test_configure_users_missing_password() -> None:
    with pytest.raises(ConfigurationError, match="opsadmin"):
        _provisioner(FakeOa(), passwords={}).configure_users()


def test_configure_directory_skipped_without_server() -> None:
    oa = FakeOa()

    _provisioner(oa, site=_site(ldap_server="")).configure_directory()

    assert oa.calls == []


def test_configure_alerting_skipped_without_server() -> None:
    oa = FakeOa()

    _provisioner(oa, site=_site(alertmail_server="")).configure_alerting()

    assert oa.calls == []


def test_save_and_dump_file_name(tmp_path) -> None:
    oa = FakeOa()

    path = _provisioner(oa).save_and_dump(tmp_path, now=datetime(2024, 5, 6, 7, 8))

    assert path.name == "OAConfig_ENC01-OA1_20240506.txt"
    assert oa.operations()[0] == "saveConfig"
    text = path.read_text(encoding="utf-8")
    assert "### getEnclosureInfo\n" in text
    assert "### getOaNetworkInfo {'bayNumber': 2}" in text


def test_run_applies_steps_in_order(tmp_path) -> None:
    oa = FakeOa()

    _provisioner(oa).run(tmp_path)

    operations = oa.operations()
    order = ["setEnclosureName", "setAlertmailServer", "setPowerConfigInfo", "configureNtp",
             "setIpConfigStatic", "setLinkFailoverEnabled", "setSnmpLocation", "configureEbipaDev",
             "addUser", "setLdapInfoEx", "saveConfig"]
    positions = [operations.index(op) for op in order]
    assert positions == sorted(positions)


def test_main_rejects_address_outside_sites(tmp_path, monkeypatch) -> None:
    config = tmp_path / "sites.conf"
    config.write_text("[site:lab]\nsubnet = 10.0.0.0/24\n", encoding="utf-8")
    monkeypatch.setattr(configure_oa, "resolve_credentials", pytest.fail)

    code = configure_oa.main(["--oa-ip", "192.168.1.10", "--last-slot", "4", "--enclosure-name", "ENC01",
                              "--config", str(config)])

    assert code == configure_oa.EXIT_INVALID_INPUT
