# common.py
# Argument and connection plumbing shared by the run_step CLIs.

import argparse
import logging
from typing import Dict, Iterable, Sequence

import requests

from hpe_mgmt_utility.errors import HpeMgmtError
from hpe_mgmt_utility.OneViewCmds import OneViewCmds
from run_step.report_csv import emit_report
from run_step.site_config import SITES_FILE, load_site_table
from run_step.site_creds import connect_first, resolve_credentials, select_appliance

_LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2
EXIT_INVALID_INPUT = 3


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-u", "--username", metavar="<username>")
    parser.add_argument("-p", "--password", metavar="<password>")
    parser.add_argument("--config", default=SITES_FILE, help="site configuration file (default: %(default)s)")
    parser.add_argument("--log-level", default="INFO", choices=["INFO", "DEBUG", "WARN"], help="log level")


def add_report_args(parser: argparse.ArgumentParser) -> None:
    add_common_args(parser)
    parser.add_argument("-a", "--appliance", metavar="<appliance>",
                        help="OneView appliance; may be omitted when exactly one is configured")
    output = parser.add_mutually_exclusive_group()
    output.add_argument("-o", "--output-dir", default=".", help="directory for the CSV report")
    output.add_argument("--console", action="store_true", help="print the report to standard output")


def connect_oneview(args: argparse.Namespace, factory=OneViewCmds) -> OneViewCmds:
    """Select the appliance and log in; raises on any failure."""
    configured = []
    if not args.appliance:
        configured = load_site_table(args.config).appliances
    appliance = select_appliance(args.appliance, configured)
    credentials = resolve_credentials(appliance, args.username, args.password)
    _LOGGER.info("Connecting to %s", appliance)
    return connect_first(factory, appliance, credentials)


def run_report(oneview, records: Iterable[Dict[str, object]], fields: Sequence[str], kind: str,
               scope: str, args: argparse.Namespace) -> int:
    """
    Drain ``records`` and emit whatever was collected. A failure part way
    through still writes the rows gathered so far and returns EXIT_FATAL.
    """
    collected = []
    code = EXIT_OK
    try:
        for record in records:
            collected.append(record)
    except (HpeMgmtError, requests.RequestException) as err:
        _LOGGER.error("Aborting after %d records: %s", len(collected), err)
        code = EXIT_FATAL
    finally:
        oneview.close()

    if collected or code == EXIT_OK:
        emit_report(collected, fields, kind, scope, args.output_dir, args.console)
    return code
