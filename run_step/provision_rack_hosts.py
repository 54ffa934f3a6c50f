#!/usr/bin/env python3
# provision_rack_hosts.py
# Bring rack servers listed in a CSV (Hostname,iLOIP,Username,Password) from
# factory state to a running OS installer through their iLO.
#
# Pass 1, per host:
#   iLO network settings -> wait for the iLO to drop off discovery and answer again
#   -> flash iLO firmware when it differs from the site target and wait for
#   the new version -> power off -> BIOS attributes and boot order
#   -> mount the first image, boot from it
# Pass 2, per host that finished pass 1:
#   wait for the first image to be ejected (first installer done)
#   -> mount the second image, boot from it
#
# Hosts run as independent tasks on a bounded thread pool; a failing host
# is reported and does not hold up the others. Every wait is bounded by the
# [rack] poll settings.

import argparse
import csv
import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import requests

from hpe_mgmt_utility.IloCmds import IloCmds, discover_ilo
from hpe_mgmt_utility.errors import ConfigurationError, HpeMgmtError, VendorCallError
from hpe_mgmt_utility.poll import PollPolicy, wait_until
from run_step.common import (
    EXIT_FATAL,
    EXIT_INVALID_INPUT,
    EXIT_OK,
    EXIT_PARTIAL,
    configure_logging,
)
from run_step.site_config import SITES_FILE, RackSettings, SiteSettings, SiteTable, load_site_table

_LOGGER = logging.getLogger(__name__)

_REQUIRED_COLUMNS = ("Hostname", "iLOIP", "Username", "Password")

STATE_UNCONFIGURED = "Unconfigured"
STATE_NETWORK_CONFIGURED = "NetworkConfigured"
STATE_REACHABLE = "Reachable"
STATE_FIRMWARE_CURRENT = "FirmwareCurrent"
STATE_POWERED_OFF = "PoweredOff"
STATE_FIRST_MOUNTED = "BootMediaMounted(first)"
STATE_FIRST_BOOTING = "Booting(first)"
STATE_MEDIA_EJECTED = "MediaEjected"
STATE_SECOND_MOUNTED = "BootMediaMounted(second)"
STATE_SECOND_BOOTING = "Booting(second)"


@dataclass(frozen=True)
class RackHost:
    hostname: str
    ilo_ip: str
    username: str
    password: str


@dataclass
class HostResult:
    hostname: str
    state: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def load_rack_hosts(path) -> List[RackHost]:
    """Load the host CSV; raises ValueError on incomplete or repeated rows."""
    hosts: List[RackHost] = []
    seen: Dict[str, Dict[str, int]] = {"Hostname": {}, "iLOIP": {}}
    with Path(path).open(encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if reader.fieldnames is None:
            raise ValueError(f"{path} is missing header row")
        fieldnames = [name.strip() for name in reader.fieldnames]
        missing = [name for name in _REQUIRED_COLUMNS if name not in fieldnames]
        if missing:
            raise ValueError(f"{path} is missing required columns: {', '.join(missing)}")
        for line, row in enumerate(reader, start=2):
            row = {(key or "").strip(): (value or "").strip() for key, value in row.items()}
            empty = [name for name in _REQUIRED_COLUMNS if not row.get(name)]
            if empty:
                raise ValueError(f"{path} line {line} has empty required fields: {', '.join(empty)}")
            for column, lines in seen.items():
                key = row[column].lower()
                if key in lines:
                    raise ValueError(f"{path} line {line} repeats {column} {row[column]} from line {lines[key]}")
                lines[key] = line
            hosts.append(RackHost(row["Hostname"], row["iLOIP"], row["Username"], row["Password"]))
    return hosts


class HostProvisioner:
    def __init__(self, host: RackHost, rack: RackSettings, site: SiteSettings,
                 ilo_factory: Callable = IloCmds,
                 discover: Callable[[str], Optional[dict]] = discover_ilo,
                 sleep: Callable[[float], None] = time.sleep):
        self.host = host
        self.rack = rack
        self.site = site
        self.ilo_factory = ilo_factory
        self.discover = discover
        self.sleep = sleep
        self.policy = PollPolicy(rack.poll_interval, rack.poll_attempts, rack.poll_backoff)
        self.state = STATE_UNCONFIGURED
        self._ilo = None

    @property
    def ilo(self):
        if self._ilo is None:
            self._ilo = self.ilo_factory(self.host.ilo_ip, self.host.username, self.host.password)
        return self._ilo

    def disconnect(self):
        if self._ilo is not None:
            try:
                self._ilo.close_session()
            except requests.RequestException as err:
                _LOGGER.debug("%s: closing iLO session failed: %s", self.host.hostname, err)
            self._ilo = None

    def _query(self, fn):
        # Installer runs outlive iLO sessions; log in again once on 401
        try:
            return fn(self.ilo)
        except VendorCallError as err:
            if err.status != 401:
                raise
            _LOGGER.info("%s: iLO session expired, logging in again", self.host.hostname)
            self._ilo = None
            return fn(self.ilo)

    def _wait(self, check, description):
        return wait_until(check, self.policy, f"{self.host.hostname}: {description}", sleep=self.sleep)

    def _enter(self, state):
        self.state = state
        _LOGGER.info("%s: %s", self.host.hostname, state)

    def configure_network(self):
        self.ilo.set_network(self.host.hostname, self.site.domain, self.site.dns_servers, self.site.ntp_servers)
        self.ilo.reset_ilo()
        # The iLO restarts to apply the settings; the old session is gone
        self._ilo = None
        self._enter(STATE_NETWORK_CONFIGURED)

    def wait_reachable(self):
        # Right after the reset request the old iLO can still answer; see it drop first
        self._wait(lambda: not self.discover(self.host.ilo_ip), "iLO restart")
        self._wait(lambda: self.discover(self.host.ilo_ip), "iLO discovery")
        self._enter(STATE_REACHABLE)

    def _firmware_converged(self):
        if not self.discover(self.host.ilo_ip):
            return False
        try:
            version = self._query(lambda ilo: ilo.get_firmware_version())
        except (HpeMgmtError, requests.RequestException) as err:
            # Expected while the iLO restarts after the flash
            _LOGGER.debug("%s: firmware check not ready: %s", self.host.hostname, err)
            self._ilo = None
            return False
        return version == self.site.ilo_firmware_version

    def ensure_firmware(self):
        target = self.site.ilo_firmware_version
        if target:
            current = self.ilo.get_firmware_version()
            if current != target:
                _LOGGER.info("%s: iLO firmware %r, target %r", self.host.hostname, current, target)
                if not self.site.ilo_firmware_url:
                    raise ConfigurationError(f"site {self.site.name} has no ilo_firmware_url")
                self.ilo.update_firmware(self.site.ilo_firmware_url)
                self._ilo = None
                self._wait(self._firmware_converged, f"iLO firmware {target}")
        self._enter(STATE_FIRMWARE_CURRENT)

    def _power_is(self, wanted):
        return self._query(lambda ilo: ilo.get_power_state()) == wanted

    def power_off(self):
        if not self._power_is("Off"):
            self.ilo.power("ForceOff")
            self._wait(lambda: self._power_is("Off"), "power off")
        self._enter(STATE_POWERED_OFF)

    def configure_bios(self):
        if self.rack.bios_attributes:
            self.ilo.set_bios_attributes(self.rack.bios_attributes)
        if self.rack.boot_order:
            self.ilo.set_boot_order(self.rack.boot_order)

    def _boot_image(self, image, mounted_state, booting_state):
        self.ilo.insert_virtual_media(image)
        self.ilo.set_boot_on_next_reset(True)
        self._enter(mounted_state)
        if self._power_is("On"):
            self.ilo.power("ForceRestart")
        else:
            self.ilo.power("On")
        self._wait(lambda: self._power_is("On"), "power on")
        self._enter(booting_state)

    def boot_first_image(self):
        self._boot_image(self.rack.first_image, STATE_FIRST_MOUNTED, STATE_FIRST_BOOTING)

    def _media_ejected(self):
        media = self._query(lambda ilo: ilo.get_virtual_media())
        return not media.get("Inserted")

    def wait_media_ejected(self):
        self._wait(self._media_ejected, "first image ejected")
        self._enter(STATE_MEDIA_EJECTED)

    def boot_second_image(self):
        self._boot_image(self.rack.second_image, STATE_SECOND_MOUNTED, STATE_SECOND_BOOTING)

    def run_first_pass(self):
        self.configure_network()
        self.wait_reachable()
        self.ensure_firmware()
        self.power_off()
        self.configure_bios()
        self.boot_first_image()

    def run_second_pass(self):
        self.wait_media_ejected()
        self.boot_second_image()


def _run_step(provisioner: HostProvisioner, step: Callable[[], None], result: HostResult) -> None:
    try:
        step()
    except (HpeMgmtError, requests.RequestException) as err:
        result.error = str(err)
        _LOGGER.error("%s: failed in state %s: %s", provisioner.host.hostname, provisioner.state, err)
    finally:
        provisioner.disconnect()
        result.state = provisioner.state


def provision_hosts(hosts: Sequence[RackHost], rack: RackSettings, table: SiteTable,
                    workers: Optional[int] = None,
                    provisioner_factory: Callable[..., HostProvisioner] = HostProvisioner) -> List[HostResult]:
    # keyed by row position so repeated hostnames stay separate
    results: List[HostResult] = []
    provisioners: Dict[int, HostProvisioner] = {}
    for index, host in enumerate(hosts):
        result = HostResult(host.hostname, STATE_UNCONFIGURED)
        results.append(result)
        try:
            site = table.site_for(host.ilo_ip)
        except ConfigurationError as err:
            result.error = str(err)
            _LOGGER.error("%s: %s", host.hostname, err)
            continue
        provisioners[index] = provisioner_factory(host, rack, site)

    max_workers = max(1, min(workers or rack.workers, len(provisioners) or 1))
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        _LOGGER.info("Pass 1 for %s hosts", len(provisioners))
        futures = [
            executor.submit(_run_step, p, p.run_first_pass, results[index])
            for index, p in provisioners.items()
        ]
        for future in futures:
            future.result()

        second = {index: p for index, p in provisioners.items() if results[index].ok}
        _LOGGER.info("Pass 2 for %s hosts", len(second))
        futures = [
            executor.submit(_run_step, p, p.run_second_pass, results[index])
            for index, p in second.items()
        ]
        for future in futures:
            future.result()

    return results


def print_results(results: Sequence[HostResult], stream=None) -> None:
    writer = csv.writer(stream or sys.stdout)
    writer.writerow(["Host", "State", "Status", "Error"])
    for result in results:
        writer.writerow([result.hostname, result.state, "OK" if result.ok else "FAILED", result.error or ""])


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Provision rack servers through their iLO")
    parser.add_argument("--csv", required=True, help="CSV with Hostname,iLOIP,Username,Password")
    parser.add_argument("--config", default=SITES_FILE, help="site configuration file (default: %(default)s)")
    parser.add_argument("--workers", type=int, help="hosts provisioned in parallel (default: [rack] workers)")
    parser.add_argument("--log-level", default="INFO", choices=["INFO", "DEBUG", "WARN"], help="log level")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        hosts = load_rack_hosts(args.csv)
        table = load_site_table(args.config)
    except (ValueError, ConfigurationError) as err:
        _LOGGER.error("Invalid input: %s", err)
        return EXIT_INVALID_INPUT
    if table.rack is None:
        _LOGGER.error("Invalid input: %s has no [rack] section", args.config)
        return EXIT_INVALID_INPUT
    if not hosts:
        _LOGGER.error("No hosts in %s", args.csv)
        return EXIT_FATAL

    results = provision_hosts(hosts, table.rack, table, args.workers)
    print_results(results)
    if all(result.ok for result in results):
        return EXIT_OK
    return EXIT_PARTIAL


if __name__ == "__main__":
    sys.exit(main())
