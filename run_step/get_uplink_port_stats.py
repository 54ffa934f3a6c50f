#!/usr/bin/env python3
# get_uplink_port_stats.py
# Most recent 5-minute averages (throughput and packet rate) for every linked
# Ethernet uplink port of the FlexFabric interconnects in OneView.

import argparse
import logging
import sys
from typing import Dict, Iterator, List, Optional

from hpe_mgmt_utility.errors import HpeMgmtError
from hpe_mgmt_utility.ReportParse import ReportParse, port_stats_fields
from run_step.common import (
    EXIT_FATAL,
    add_report_args,
    configure_logging,
    connect_oneview,
    run_report,
)
from run_step.get_uplink_port_info import scoped_interconnects

_LOGGER = logging.getLogger(__name__)

REPORT_KIND = "UplinkPortStatistics"


def iter_port_statistics(oneview, enclosure: Optional[str] = None,
                         interconnect: Optional[str] = None,
                         megabits: bool = False) -> Iterator[Dict[str, object]]:
    for ic in scoped_interconnects(oneview, enclosure, interconnect):
        _LOGGER.info("Processing %s", ic.get("name"))
        for port in ReportParse.uplink_ports(ic):
            port_name = port.get("portName")
            stats = oneview.get_port_statistics(ic, port_name)
            yield ReportParse.port_stats_record(ic, port_name, stats, megabits)


def collect_port_statistics(oneview, enclosure: Optional[str] = None,
                            interconnect: Optional[str] = None,
                            megabits: bool = False) -> List[Dict[str, object]]:
    return list(iter_port_statistics(oneview, enclosure, interconnect, megabits))


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Report uplink port statistics from OneView")
    add_report_args(parser)
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("-e", "--enclosure", metavar="<enclosure>", help="limit to one enclosure")
    scope.add_argument("-i", "--interconnect", metavar="<interconnect>", help="limit to one interconnect")
    parser.add_argument("-m", "--megabits", action="store_true",
                        help="report throughput in Mb/s instead of Kb/s")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        oneview = connect_oneview(args)
    except HpeMgmtError as err:
        _LOGGER.error("%s", err)
        return EXIT_FATAL

    records = iter_port_statistics(oneview, args.enclosure, args.interconnect, args.megabits)
    scope = args.interconnect or args.enclosure or "AllEnclosures"
    return run_report(oneview, records, port_stats_fields(args.megabits), REPORT_KIND, scope, args)


if __name__ == "__main__":
    sys.exit(main())
