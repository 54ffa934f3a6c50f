# site_config.py
# Site table for the provisioning procedures.
#
# Every site is a [site:<name>] section keyed by its management subnet. An
# address that falls in no configured subnet is a configuration error;
# there is no default site.

import configparser
import ipaddress
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from hpe_mgmt_utility.errors import ConfigurationError

SCRIPT_LOCATION = os.path.dirname(os.path.realpath(__file__))
SITES_FILE = os.path.join(SCRIPT_LOCATION, 'sites.conf')

SITE_PREFIX = 'site:'


def _split(value: str) -> List[str]:
    return [item.strip() for item in (value or '').split(',') if item.strip()]


def _pairs(value: str) -> List[Tuple[str, str]]:
    # "name:acl, name2:acl2"
    pairs = []
    for item in _split(value):
        name, _, acl = item.partition(':')
        pairs.append((name.strip(), (acl or 'USER').strip().upper()))
    return pairs


@dataclass(frozen=True)
class SiteSettings:
    name: str
    subnet: ipaddress.IPv4Network
    netmask: str
    gateway: str
    domain: str
    dns_servers: Tuple[str, ...]
    ntp_servers: Tuple[str, ...]
    ntp_poll: int = 720
    timezone: str = 'UTC'
    rack_name: str = ''
    snmp_location: str = ''
    snmp_contact: str = ''
    snmp_read_community: str = ''
    snmp_trap_receivers: Tuple[str, ...] = ()
    alertmail_server: str = ''
    alertmail_sender: str = ''
    alertmail_domain: str = ''
    alertmail_receiver: str = ''
    power_redundancy: str = 'AC_REDUNDANT'
    power_delay_seconds: int = 0
    link_failover_interval: int = 30
    local_users: Tuple[Tuple[str, str], ...] = ()
    ldap_server: str = ''
    ldap_port: int = 636
    ldap_search_contexts: Tuple[str, ...] = ()
    ldap_groups: Tuple[Tuple[str, str], ...] = ()
    ilo_firmware_version: str = ''
    ilo_firmware_url: str = ''


@dataclass(frozen=True)
class RackSettings:
    first_image: str
    second_image: str
    boot_order: Tuple[str, ...] = ()
    bios_attributes: Dict[str, str] = field(default_factory=dict)
    poll_interval: float = 10.0
    poll_attempts: int = 90
    poll_backoff: float = 1.0
    workers: int = 8


class SiteTable:
    def __init__(self, sites: List[SiteSettings], appliances: List[str],
                 rack: Optional[RackSettings] = None):
        self.sites = sites
        self.appliances = appliances
        self.rack = rack

    def site_for(self, address: str) -> SiteSettings:
        try:
            ip = ipaddress.IPv4Address(address)
        except ValueError as err:
            raise ConfigurationError(f'{address!r} is not an IPv4 address') from err
        for site in self.sites:
            if ip in site.subnet:
                return site
        raise ConfigurationError(
            f'{address} is not in any configured site subnet '
            f'({", ".join(str(site.subnet) for site in self.sites) or "none configured"})'
        )


def _site_from_section(name: str, section: configparser.SectionProxy) -> SiteSettings:
    try:
        subnet = ipaddress.IPv4Network(section['subnet'], strict=False)
    except KeyError as err:
        raise ConfigurationError(f'[{SITE_PREFIX}{name}] has no subnet') from err
    except ValueError as err:
        raise ConfigurationError(f'[{SITE_PREFIX}{name}] has an invalid subnet: {err}') from err

    return SiteSettings(
        name=name,
        subnet=subnet,
        netmask=section.get('netmask', str(subnet.netmask)),
        gateway=section.get('gateway', ''),
        domain=section.get('domain', ''),
        dns_servers=tuple(_split(section.get('dns_servers', ''))),
        ntp_servers=tuple(_split(section.get('ntp_servers', ''))),
        ntp_poll=section.getint('ntp_poll', 720),
        timezone=section.get('timezone', 'UTC'),
        rack_name=section.get('rack_name', ''),
        snmp_location=section.get('snmp_location', ''),
        snmp_contact=section.get('snmp_contact', ''),
        snmp_read_community=section.get('snmp_read_community', ''),
        snmp_trap_receivers=tuple(_split(section.get('snmp_trap_receivers', ''))),
        alertmail_server=section.get('alertmail_server', ''),
        alertmail_sender=section.get('alertmail_sender', ''),
        alertmail_domain=section.get('alertmail_domain', ''),
        alertmail_receiver=section.get('alertmail_receiver', ''),
        power_redundancy=section.get('power_redundancy', 'AC_REDUNDANT'),
        power_delay_seconds=section.getint('power_delay_seconds', 0),
        link_failover_interval=section.getint('link_failover_interval', 30),
        local_users=tuple(_pairs(section.get('local_users', ''))),
        ldap_server=section.get('ldap_server', ''),
        ldap_port=section.getint('ldap_port', 636),
        ldap_search_contexts=tuple(
            item.strip() for item in section.get('ldap_search_contexts', '').split(';') if item.strip()
        ),
        ldap_groups=tuple(_pairs(section.get('ldap_groups', ''))),
        ilo_firmware_version=section.get('ilo_firmware_version', ''),
        ilo_firmware_url=section.get('ilo_firmware_url', ''),
    )


def _rack_from_parser(confparser: configparser.RawConfigParser) -> Optional[RackSettings]:
    if not confparser.has_section('rack'):
        return None
    section = confparser['rack']
    bios = {}
    if confparser.has_section('rack.bios'):
        bios = dict(confparser.items('rack.bios'))
    try:
        return RackSettings(
            first_image=section['first_image'],
            second_image=section['second_image'],
            boot_order=tuple(_split(section.get('boot_order', ''))),
            bios_attributes=bios,
            poll_interval=section.getfloat('poll_interval', 10.0),
            poll_attempts=section.getint('poll_attempts', 90),
            poll_backoff=section.getfloat('poll_backoff', 1.0),
            workers=section.getint('workers', 8),
        )
    except KeyError as err:
        raise ConfigurationError(f'[rack] is missing {err.args[0]}') from err


def load_site_table(path: str = SITES_FILE) -> SiteTable:
    confparser = configparser.RawConfigParser()
    confparser.optionxform = str
    if not confparser.read(path):
        raise ConfigurationError(f'Site configuration not found: {path}')

    sites = [
        _site_from_section(section[len(SITE_PREFIX):], confparser[section])
        for section in confparser.sections()
        if section.startswith(SITE_PREFIX)
    ]
    appliances = []
    if confparser.has_section('appliances'):
        appliances = _split(confparser['appliances'].get('names', ''))
    return SiteTable(sites, appliances, _rack_from_parser(confparser))
