"""
Parser for the text report cutadapt prints after a demultiplexing run.

Only these lines are read, everything else is ignored::

    Total reads processed:  <count>
    Reads with adapters:    <count> (<percent>%)
    === [<read>: ]Adapter <name> ===
    ...; Trimmed: <count> times

Counts may contain thousands separators. The ``Trimmed`` line following an
adapter header is the number of reads assigned to that sample. A run on an
empty input file reports ``No reads processed!`` instead of the summary.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict

from .common import ReportFormatError

_TOTAL_RE = re.compile(r"^Total reads processed:\s+(?P<n>[\d,]+)\s*$")
_ADAPTERS_RE = re.compile(r"^Reads with adapters:\s+(?P<n>[\d,]+)(\s+\(.*\))?\s*$")
_SECTION_RE = re.compile(r"^=== (?:[^:=]+: )?Adapter (?P<name>.+?) ===\s*$")
_TRIMMED_RE = re.compile(r"Trimmed: (?P<n>[\d,]+) times")
_EMPTY_RE = re.compile(r"^No reads processed", re.MULTILINE)


def _count(text):
    return int(text.replace(",", ""))


@dataclass
class TrimReport:
    """Counts extracted from one trimmer report (one well, one direction)."""

    total: int
    with_adapters: int
    per_sample: Dict[str, int] = field(default_factory=dict)

    @property
    def untagged(self):
        return self.total - self.with_adapters

    def count(self, sample):
        return self.per_sample[sample]


def parse_report(text, sample_names):
    """
    Extracts read totals and per-sample counts from a cutadapt report.

    :param text: The report text.
    :type text: str
    :param sample_names: Names of the adapters (samples) passed to the trimmer.
    :type sample_names: list[str]
    :rtype: TrimReport
    :raises ReportFormatError: If a total or a configured sample is missing, a
        line appears twice, or more reads have adapters than were processed.
    """
    if _EMPTY_RE.search(text):
        return TrimReport(0, 0, {name: 0 for name in sample_names})

    total = with_adapters = None
    per_sample = {}
    section = None
    for line in text.splitlines():
        m = _TOTAL_RE.match(line)
        if m:
            if total is not None:
                raise ReportFormatError("'Total reads processed' appears twice")
            total = _count(m.group("n"))
            continue
        m = _ADAPTERS_RE.match(line)
        if m:
            if with_adapters is not None:
                raise ReportFormatError("'Reads with adapters' appears twice")
            with_adapters = _count(m.group("n"))
            continue
        m = _SECTION_RE.match(line)
        if m:
            section = m.group("name")
            continue
        m = _TRIMMED_RE.search(line)
        if m and section is not None:
            if section in per_sample:
                raise ReportFormatError(f"adapter {section} is reported twice")
            per_sample[section] = _count(m.group("n"))
            section = None

    if total is None:
        raise ReportFormatError("no 'Total reads processed' line in trimmer report")
    if with_adapters is None:
        raise ReportFormatError("no 'Reads with adapters' line in trimmer report")
    if with_adapters > total:
        raise ReportFormatError(
            f"{with_adapters} reads with adapters exceed {total} processed reads"
        )

    missing = [name for name in sample_names if name not in per_sample]
    if missing:
        raise ReportFormatError(f"no 'Trimmed' count for sample(s) {', '.join(missing)}")
    unknown = [name for name in per_sample if name not in sample_names]
    for name in unknown:
        logging.warning(f"Ignoring trimmer count for unconfigured adapter {name}")
        del per_sample[name]

    if sum(per_sample.values()) != with_adapters:
        logging.warning(
            f"Per-sample counts ({sum(per_sample.values())}) differ from reads "
            f"with adapters ({with_adapters})"
        )
    return TrimReport(total, with_adapters, per_sample)
