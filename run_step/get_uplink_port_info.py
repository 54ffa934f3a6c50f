#!/usr/bin/env python3
# get_uplink_port_info.py
# One CSV row per linked Ethernet uplink port of the FlexFabric interconnects
# managed by a OneView appliance, with its uplink set, VLANs and LLDP neighbor.

import argparse
import logging
import sys
from typing import Dict, Iterator, List, Optional

from hpe_mgmt_utility.errors import HpeMgmtError
from hpe_mgmt_utility.ReportParse import PORT_INFO_FIELDS, ReportParse
from run_step.common import (
    EXIT_FATAL,
    add_report_args,
    configure_logging,
    connect_oneview,
    run_report,
)

_LOGGER = logging.getLogger(__name__)

REPORT_KIND = "UplinkPortInfo"


def scoped_interconnects(oneview, enclosure: Optional[str] = None,
                         interconnect: Optional[str] = None) -> List[dict]:
    """
    A named interconnect is returned as is; enclosure and all-enclosure
    scopes only keep FlexFabric modules.
    """
    if interconnect:
        return [oneview.get_interconnect(interconnect)]
    if enclosure:
        candidates = oneview.get_enclosure_interconnects(oneview.get_enclosure(enclosure))
    else:
        candidates = oneview.get_interconnects()
    selected = []
    for ic in candidates:
        if ReportParse.is_flexfabric(ic):
            selected.append(ic)
        else:
            _LOGGER.info("Skipping %s (model %s)", ic.get("name"), ic.get("model"))
    return selected


def iter_port_info(oneview, enclosure: Optional[str] = None,
                   interconnect: Optional[str] = None) -> Iterator[Dict[str, object]]:
    # uplink set name and VLAN list per uplink set uri
    uplink_sets: Dict[str, tuple] = {}
    for ic in scoped_interconnects(oneview, enclosure, interconnect):
        _LOGGER.info("Processing %s", ic.get("name"))
        for port in ReportParse.uplink_ports(ic):
            uplink_set_name = ""
            vlans = ""
            uplink_uri = port.get("associatedUplinkSetUri")
            if uplink_uri:
                if uplink_uri not in uplink_sets:
                    uplink_set = oneview.get_uplink_set(uplink_uri)
                    networks = [oneview.get_network(uri) for uri in uplink_set.get("networkUris") or []]
                    uplink_sets[uplink_uri] = (uplink_set.get("name", ""), ReportParse.join_vlans(networks))
                uplink_set_name, vlans = uplink_sets[uplink_uri]
            yield ReportParse.port_info_record(ic, port, uplink_set_name, vlans)


def collect_port_info(oneview, enclosure: Optional[str] = None,
                      interconnect: Optional[str] = None) -> List[Dict[str, object]]:
    return list(iter_port_info(oneview, enclosure, interconnect))


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Report uplink port information from OneView")
    add_report_args(parser)
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("-e", "--enclosure", metavar="<enclosure>", help="limit to one enclosure")
    scope.add_argument("-i", "--interconnect", metavar="<interconnect>", help="limit to one interconnect")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        oneview = connect_oneview(args)
    except HpeMgmtError as err:
        _LOGGER.error("%s", err)
        return EXIT_FATAL

    records = iter_port_info(oneview, args.enclosure, args.interconnect)
    scope = args.interconnect or args.enclosure or "AllEnclosures"
    return run_report(oneview, records, PORT_INFO_FIELDS, REPORT_KIND, scope, args)


if __name__ == "__main__":
    sys.exit(main())
