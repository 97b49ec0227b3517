import csv
from types import MappingProxyType

from .common import LedgerConflictError, Policy, ScroungeMode, WriteError

# ledger field -> report column
COLUMNS = {
    "tagged_found": "n_tagged_reads_found",
    "matepairs_found": "n_matepairs_found",
    "singletons": "n_singletons",
    "matepairs_scrounged": "n_matepairs_scrounged",
    "singletons_remain": "n_singletons_remain",
    "reads_post_scrounging": "n_reads_post_scrounging",
    "total_paired_written": "total_paired_written",
}


def report_fields(policy, scrounge_mode=None):
    """
    Ledger fields reported for a configured pairing policy.

    :param policy: The policy the run was configured with.
    :type policy: Policy
    :param scrounge_mode: Scrounge sub-option, only used with Policy.SCROUNGE.
    :type scrounge_mode: ScroungeMode, optional
    :rtype: list[str]
    """
    fields = ["tagged_found"]
    if policy in (Policy.STRICT, Policy.SCROUNGE):
        fields += ["matepairs_found", "singletons"]
    if policy == Policy.SCROUNGE:
        fields += ["matepairs_scrounged", "singletons_remain", "reads_post_scrounging"]
        if scrounge_mode == ScroungeMode.MERGE:
            fields.append("total_paired_written")
    return fields


def report_columns(policy, scrounge_mode=None):
    return [COLUMNS[f] for f in report_fields(policy, scrounge_mode)]


class CountLedger:
    """
    Append-only table of read counts keyed by (well, direction, sample).

    Each metric is produced once per key; rewriting the same value is allowed,
    a different value is an error.
    """

    def __init__(self):
        self._rows = {}

    def record(self, well, direction, sample, field, value):
        if field not in COLUMNS:
            raise ValueError(f"unknown ledger field {field!r}")
        row = self._rows.setdefault((well, direction, sample), {})
        previous = row.get(field)
        if previous is not None and previous != value:
            raise LedgerConflictError(
                f"{field} for {well}/{direction}/{sample} already recorded as "
                f"{previous}, refusing {value}"
            )
        row[field] = int(value)

    def get(self, well, direction, sample, field):
        return self._rows.get((well, direction, sample), {}).get(field)

    def export(self):
        """Rows as (well, direction, sample, read-only fields) in recording order."""
        return [
            (well, direction, sample, MappingProxyType(fields))
            for (well, direction, sample), fields in self._rows.items()
        ]

    def write_csv(self, path, policy, scrounge_mode=None, na_marker="NA"):
        """
        Renders the ledger as CSV, one row per (well, direction, sample).

        Metrics that were not computed for a row are written as ``na_marker``.
        """
        fields = report_fields(policy, scrounge_mode)
        try:
            with open(path, "w", newline="") as fh:
                writer = csv.writer(fh)
                writer.writerow(["well", "direction", "sample"] + [COLUMNS[f] for f in fields])
                for well, direction, sample, row in self.export():
                    writer.writerow(
                        [well, direction, sample]
                        + [row[f] if f in row else na_marker for f in fields]
                    )
        except OSError as e:
            raise WriteError(f"cannot write count log {path}: {e}") from e
