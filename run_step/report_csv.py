# report_csv.py
# CSV output shared by the OneView report collectors.

import csv
import logging
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, TextIO

_LOGGER = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y.%m.%d.%H%M"


def report_filename(kind: str, scope: str, now: Optional[datetime] = None) -> str:
    """<ReportKind>-<ScopeName>-<yyyy.MM.dd.HHmm>.csv"""
    now = now or datetime.now()
    safe_scope = re.sub(r"[^\w.-]+", "_", scope) or "All"
    return f"{kind}-{safe_scope}-{now.strftime(TIMESTAMP_FORMAT)}.csv"


def _write(records: Sequence[Dict[str, object]], fields: List[str], handle: TextIO) -> None:
    writer = csv.DictWriter(handle, fieldnames=fields, extrasaction="ignore")
    writer.writeheader()
    for record in records:
        writer.writerow(record)


def write_report(records: Sequence[Dict[str, object]], fields: List[str], path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        _write(records, fields, handle)
    _LOGGER.info("Wrote %s records to %s", len(records), path)
    return path


def print_report(records: Sequence[Dict[str, object]], fields: List[str], stream: TextIO = None) -> None:
    _write(records, fields, stream or sys.stdout)


def emit_report(records, fields, kind: str, scope: str, out_dir=None, console: bool = False):
    """Print to stdout when console is set, otherwise write a timestamped file."""
    if console:
        print_report(records, fields)
        return None
    return write_report(records, fields, Path(out_dir or ".") / report_filename(kind, scope))
