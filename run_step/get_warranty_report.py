#!/usr/bin/env python3
# get_warranty_report.py
# Support entitlement (warranty) status of servers and/or enclosures known to OneView.

import argparse
import logging
import sys
from typing import Dict, Iterator, List, Optional

from hpe_mgmt_utility.errors import HpeMgmtError
from hpe_mgmt_utility.ReportParse import WARRANTY_FIELDS, ReportParse
from run_step.common import (
    EXIT_FATAL,
    add_report_args,
    configure_logging,
    connect_oneview,
    run_report,
)

_LOGGER = logging.getLogger(__name__)

REPORT_KIND = "Warranty"


def iter_warranty(oneview, servers: bool = True, enclosures: bool = True,
                  name: Optional[str] = None) -> Iterator[Dict[str, object]]:
    resources = []
    if servers:
        resources.extend(oneview.get_server_hardware(name))
    if enclosures:
        resources.extend(oneview.get_enclosures(name))
    if not resources:
        _LOGGER.info("No %s matched", name or "resources")

    for resource in resources:
        _LOGGER.info("Fetching entitlement for %s", resource.get("name"))
        entitlement = oneview.get_entitlement(resource)
        yield ReportParse.warranty_record(resource, entitlement)


def collect_warranty(oneview, servers: bool = True, enclosures: bool = True,
                     name: Optional[str] = None) -> List[Dict[str, object]]:
    return list(iter_warranty(oneview, servers, enclosures, name))


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Report warranty/entitlement status from OneView")
    add_report_args(parser)
    parser.add_argument("--servers", action="store_true", help="include server hardware")
    parser.add_argument("--enclosures", action="store_true", help="include enclosures")
    parser.add_argument("-n", "--name", metavar="<name>", help="limit to one server or enclosure")
    args = parser.parse_args(argv)
    if not args.servers and not args.enclosures:
        args.servers = args.enclosures = True
    return args


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        oneview = connect_oneview(args)
    except HpeMgmtError as err:
        _LOGGER.error("%s", err)
        return EXIT_FATAL

    records = iter_warranty(oneview, args.servers, args.enclosures, args.name)
    if args.name:
        scope = args.name
    elif args.servers and args.enclosures:
        scope = "All"
    else:
        scope = "Servers" if args.servers else "Enclosures"
    return run_report(oneview, records, WARRANTY_FIELDS, REPORT_KIND, scope, args)


if __name__ == "__main__":
    sys.exit(main())
