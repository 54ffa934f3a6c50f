#!/usr/bin/env python3
# configure_oa.py
# First-time configuration of the Onboard Administrator of a new enclosure.
#
#  1) match the OA address against the site table (fails on an unknown subnet)
#  2) derive OA2, interconnect and device bay addresses from the OA address
#  3) names, alert mail, power, time, network, failover, SNMP, EBIPA,
#     local users, directory groups - in that order, no rollback
#  4) save the configuration and dump it to OAConfig_<hostname>_<date>.txt

import argparse
import ipaddress
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

import requests

from hpe_mgmt_utility.OaCmds import OaCmds, find_text
from hpe_mgmt_utility.errors import ConfigurationError, HpeMgmtError
from run_step.common import (
    EXIT_FATAL,
    EXIT_INVALID_INPUT,
    EXIT_OK,
    add_common_args,
    configure_logging,
)
from run_step.site_config import SiteSettings, load_site_table
from run_step.site_creds import connect_first, get_site_credentials, resolve_credentials

_LOGGER = logging.getLogger(__name__)

INTERCONNECT_BAYS = 4
MAX_DEVICE_BAYS = 16

# Configuration queries written to the audit dump, in order
DUMP_QUERIES = [
    ("getEnclosureInfo", {}),
    ("getEnclosureNetworkInfo", {}),
    ("getOaNetworkInfo", {"bayNumber": 1}),
    ("getOaNetworkInfo", {"bayNumber": 2}),
    ("getEnclosureTime", {}),
    ("getPowerConfigInfo", {}),
    ("getSnmpInfo", {}),
    ("getAlertmailInfo", {}),
    ("getEbipaInfo", {}),
    ("getUsers", {}),
    ("getLdapInfo", {}),
    ("getLdapGroups", {}),
]


@dataclass(frozen=True)
class BayAddresses:
    oa1: str
    oa2: str
    interconnects: List[str]
    devices: List[str]


def derive_bay_addresses(oa_ip: str, last_slot: int) -> BayAddresses:
    """
    Contiguous block from the primary OA address: OA2 is the next address,
    then the four interconnect bays, then device bays 1..last_slot.
    """
    if not 1 <= last_slot <= MAX_DEVICE_BAYS:
        raise ConfigurationError(f"last slot must be between 1 and {MAX_DEVICE_BAYS}, got {last_slot}")
    try:
        base = ipaddress.IPv4Address(oa_ip)
    except ValueError as err:
        raise ConfigurationError(f"{oa_ip!r} is not an IPv4 address") from err

    last_octet = int(str(base).rsplit(".", 1)[1])
    needed = 1 + INTERCONNECT_BAYS + last_slot
    if last_octet + needed > 254:
        raise ConfigurationError(
            f"{oa_ip} leaves no room for {needed} more addresses in the last octet"
        )

    def offset(n: int) -> str:
        return str(base + n)

    return BayAddresses(
        oa1=str(base),
        oa2=offset(1),
        interconnects=[offset(2 + i) for i in range(INTERCONNECT_BAYS)],
        devices=[offset(2 + INTERCONNECT_BAYS + i) for i in range(last_slot)],
    )


def bay_selection(last_slot: int) -> dict:
    return {
        "oaAccess": True,
        "bladeBays": {"blade": list(range(1, last_slot + 1))},
        "interconnectTrayBays": {"interconnectTray": list(range(1, INTERCONNECT_BAYS + 1))},
    }


def _keyring_password(site: SiteSettings) -> Callable[[str], Optional[str]]:
    def lookup(user: str) -> Optional[str]:
        creds = get_site_credentials(f"oa-{site.name}", [user])
        return creds[0][1] if creds else None
    return lookup


class OaProvisioner:
    def __init__(self, oa, site: SiteSettings, addresses: BayAddresses, enclosure_name: str,
                 password_lookup: Callable[[str], Optional[str]] = None):
        self.oa = oa
        self.site = site
        self.addresses = addresses
        self.enclosure_name = enclosure_name
        self.password_lookup = password_lookup or _keyring_password(site)
        self.last_slot = len(addresses.devices)

    def oa_name(self, bay: int) -> str:
        return f"{self.enclosure_name}-OA{bay}"

    def set_names(self):
        info = self.oa.call("getEnclosureInfo")
        current = find_text(info, "getEnclosureInfoResponse/enclosureInfo/enclosureName")
        if current != self.enclosure_name:
            _LOGGER.info("Renaming enclosure %r -> %r", current, self.enclosure_name)
            self.oa.call("setEnclosureName", enclosureName=self.enclosure_name)
        current_rack = find_text(info, "getEnclosureInfoResponse/enclosureInfo/rackName")
        if self.site.rack_name and current_rack != self.site.rack_name:
            self.oa.call("setRackName", rackName=self.site.rack_name)
        for bay in (1, 2):
            current_oa = self.oa.get_text("getOaNetworkInfo", "getOaNetworkInfoResponse/oaNetworkInfo/dnsName",
                                          bayNumber=bay)
            if current_oa != self.oa_name(bay):
                self.oa.call("setOaName", bayNumber=bay, oaName=self.oa_name(bay))

    def configure_alerting(self):
        if not self.site.alertmail_server:
            _LOGGER.info("No alert mail server for site %s", self.site.name)
            return
        self.oa.call("setAlertmailServer", ipAddress=self.site.alertmail_server)
        self.oa.call("setAlertmailSenderEmail", emailAddress=self.site.alertmail_sender)
        self.oa.call("setAlertmailDomain", emailDomain=self.site.alertmail_domain)
        self.oa.call("setAlertmailReceiver", emailAddress=self.site.alertmail_receiver)

    def configure_power(self):
        self.oa.call("setPowerConfigInfo", redundancyMode=self.site.power_redundancy,
                     powerCeiling=0, dynamicPowerSaverEnabled=False)
        interconnects = [{"bayNumber": bay, "delay": 0} for bay in range(1, INTERCONNECT_BAYS + 1)]
        self.oa.call("setPowerdelayInterconnectSettings", powerdelaySettings={"powerdelayBay": interconnects})
        # Device bays power on one step apart after the interconnects
        servers = [
            {"bayNumber": bay, "delay": bay * self.site.power_delay_seconds}
            for bay in range(1, self.last_slot + 1)
        ]
        self.oa.call("setPowerdelayServerSettings", powerdelaySettings={"powerdelayBay": servers})

    def configure_time(self):
        self.oa.call("setEnclosureTimeZone", timeZone=self.site.timezone)
        ntp = list(self.site.ntp_servers) + ["", ""]
        self.oa.call("configureNtp", ntpPrimary=ntp[0], ntpSecondary=ntp[1], ntpPoll=self.site.ntp_poll)

    def configure_network(self):
        dns = list(self.site.dns_servers) + ["", ""]
        for bay, address in ((1, self.addresses.oa1), (2, self.addresses.oa2)):
            self.oa.call("setIpConfigStatic", bayNumber=bay, ipAddress=address, netmask=self.site.netmask,
                         gateway=self.site.gateway, dns1=dns[0], dns2=dns[1])
        self.oa.call("setNetworkProtocols", http=True, ssh=True, telnet=False, xmlReply=True,
                     strongEncryption=False)

    def configure_failover(self):
        self.oa.call("setLinkFailoverEnabled", enabled=True)
        self.oa.call("setLinkFailoverInterval", interval=self.site.link_failover_interval)

    def configure_snmp(self):
        self.oa.call("setSnmpLocation", location=self.site.snmp_location)
        self.oa.call("setSnmpContact", contact=self.site.snmp_contact)
        if self.site.snmp_read_community:
            self.oa.call("setSnmpReadCommunity", ro=self.site.snmp_read_community)
        for receiver in self.site.snmp_trap_receivers:
            self.oa.call("addSnmpTrapReceiver", ipAddress=receiver, community=self.site.snmp_read_community)

    def configure_bay_addressing(self):
        dns = list(self.site.dns_servers) + ["", "", ""]
        ntp = list(self.site.ntp_servers) + ["", ""]
        for device in ("SERVER", "INTERCONNECT"):
            self.oa.call("setEbipaNetmask", ebipaDevice=device, ipAddress=self.site.netmask)
            self.oa.call("setEbipaGateway", ebipaDevice=device, ipAddress=self.site.gateway)
            self.oa.call("setEbipaDomain", ebipaDevice=device, domain=self.site.domain)
            self.oa.call("setEbipaDnsServers", ebipaDevice=device, ipAddress1=dns[0], ipAddress2=dns[1],
                         ipAddress3=dns[2])
            self.oa.call("setEbipaNtpServers", ebipaDevice=device, ipAddress1=ntp[0], ipAddress2=ntp[1])

        bays = [("INTERCONNECT", n + 1, ip) for n, ip in enumerate(self.addresses.interconnects)]
        bays += [("SERVER", n + 1, ip) for n, ip in enumerate(self.addresses.devices)]
        for device, bay, address in bays:
            _LOGGER.info("EBIPA %s bay %s -> %s", device, bay, address)
            self.oa.call("configureEbipaDev", ebipaInfo={
                "bayNumber": bay,
                "deviceType": device,
                "ipAddress": address,
                "netmask": self.site.netmask,
                "gateway": self.site.gateway,
                "domain": self.site.domain,
                "enabled": True,
            })

    def configure_users(self):
        bays = bay_selection(self.last_slot)
        for username, acl in self.site.local_users:
            exists = self.oa.get_text("userExists", "userExistsResponse/exists", username=username)
            if exists != "true":
                password = self.password_lookup(username)
                if not password:
                    raise ConfigurationError(f"No stored password for OA user {username} (site {self.site.name})")
                self.oa.call("addUser", username=username, password=password)
            self.oa.call("setUserBayAcl", username=username, acl=acl)
            self.oa.call("addUserBayAccess", username=username, bays=bays)

    def configure_directory(self):
        if not self.site.ldap_server:
            _LOGGER.info("No directory server for site %s", self.site.name)
            return
        contexts = list(self.site.ldap_search_contexts) + ["", "", ""]
        self.oa.call("setLdapInfoEx", directoryServerAddress=self.site.ldap_server,
                     directoryServerSslPort=self.site.ldap_port, searchContext1=contexts[0],
                     searchContext2=contexts[1], searchContext3=contexts[2], userNtAccountNameMapping=True)
        self.oa.call("enableLdapAuthentication", enableLdap=True, enableLocalUsers=True)
        bays = bay_selection(self.last_slot)
        for group, acl in self.site.ldap_groups:
            exists = self.oa.get_text("ldapGroupExists", "ldapGroupExistsResponse/exists", ldapGroup=group)
            if exists != "true":
                self.oa.call("addLdapGroup", ldapGroup=group)
            self.oa.call("setLdapGroupBayAcl", ldapGroup=group, acl=acl)
            self.oa.call("addLdapGroupBayAccess", ldapGroup=group, bays=bays)

    def save_and_dump(self, out_dir=".", now: Optional[datetime] = None) -> Path:
        self.oa.call("saveConfig")
        now = now or datetime.now()
        path = Path(out_dir) / f"OAConfig_{self.oa_name(1)}_{now.strftime('%Y%m%d')}.txt"
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            for operation, params in DUMP_QUERIES:
                title = f"### {operation} {params}" if params else f"### {operation}"
                handle.write(title + "\n")
                handle.write(self.oa.dump(operation, **params))
                handle.write("\n")
        _LOGGER.info("Configuration dump written to %s", path)
        return path

    def run(self, out_dir=".") -> Path:
        steps = [
            self.set_names,
            self.configure_alerting,
            self.configure_power,
            self.configure_time,
            self.configure_network,
            self.configure_failover,
            self.configure_snmp,
            self.configure_bay_addressing,
            self.configure_users,
            self.configure_directory,
        ]
        for step in steps:
            _LOGGER.info("[%s] %s", self.enclosure_name, step.__name__)
            step()
        return self.save_and_dump(out_dir)


def _oa_login(address, user, pw):
    oa = OaCmds(address, user, pw)
    oa.login()
    return oa


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Configure the Onboard Administrator of a new enclosure")
    add_common_args(parser)
    parser.add_argument("--oa-ip", required=True, help="address of the primary OA")
    parser.add_argument("--last-slot", required=True, type=int, help="highest populated device bay")
    parser.add_argument("--enclosure-name", required=True, help="enclosure name to set")
    parser.add_argument("--out-dir", default=".", help="directory for the configuration dump")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        site = load_site_table(args.config).site_for(args.oa_ip)
        addresses = derive_bay_addresses(args.oa_ip, args.last_slot)
    except ConfigurationError as err:
        _LOGGER.error("Invalid input: %s", err)
        return EXIT_INVALID_INPUT
    _LOGGER.info("OA %s is in site %s; bays %s", args.oa_ip, site.name, addresses)

    try:
        credentials = resolve_credentials(f"oa-{site.name}", args.username, args.password)
        oa = connect_first(_oa_login, args.oa_ip, credentials)
    except HpeMgmtError as err:
        _LOGGER.error("%s", err)
        return EXIT_FATAL

    try:
        OaProvisioner(oa, site, addresses, args.enclosure_name).run(args.out_dir)
    except (HpeMgmtError, requests.RequestException) as err:
        _LOGGER.error("Aborting, enclosure left partially configured: %s", err)
        return EXIT_FATAL
    finally:
        oa.logout()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
