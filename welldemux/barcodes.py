import csv
import re
from typing import NamedTuple

from .common import ConfigError, normalize_well, well_sort_key

REQUIRED_COLUMNS = ("well", "sample", "forward_tag", "reverse_tag")

_TAG_RE = re.compile(r"^[ACGTURYSWKMBDHVN]+$")
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class Sample(NamedTuple):
    name: str
    forward_tag: str
    reverse_tag: str


class SampleRegistry:
    """
    Samples per well with their forward and reverse tag sequences.

    Every well also owns one untagged sentinel sample, named from the well id,
    which collects the reads that matched no tag.
    """

    def __init__(self, untagged_suffix="untagged"):
        self.untagged_suffix = untagged_suffix
        self._wells = {}
        self._sample_wells = {}

    def add(self, well, name, forward_tag, reverse_tag, source="barcode table"):
        """
        Registers one sample.

        :raises ConfigError: On invalid names or tags, duplicates within a well,
            reuse of a sample name in another well, or a clash with the
            untagged sentinel name.
        """
        well = normalize_well(well)
        name = name.strip()
        forward_tag = forward_tag.strip().upper()
        reverse_tag = reverse_tag.strip().upper()
        if not well:
            raise ConfigError(f"{source}: sample {name!r} has no well")
        if not _NAME_RE.match(name):
            raise ConfigError(f"{source}: sample name {name!r} is not valid")
        for tag in (forward_tag, reverse_tag):
            if not _TAG_RE.match(tag):
                raise ConfigError(f"{source}: tag {tag!r} of sample {name} is not valid DNA")
        if name.endswith(f"_{self.untagged_suffix}"):
            raise ConfigError(
                f"{source}: sample name {name} clashes with the untagged sample naming"
            )
        samples = self._wells.setdefault(well, {})
        if name in samples:
            raise ConfigError(f"{source}: sample {name} appears twice in well {well}")
        other_well = self._sample_wells.get(name)
        if other_well is not None:
            raise ConfigError(
                f"{source}: sample {name} is used in wells {other_well} and {well}; "
                "output files would collide"
            )
        for other in samples.values():
            if (other.forward_tag, other.reverse_tag) == (forward_tag, reverse_tag):
                raise ConfigError(
                    f"{source}: samples {other.name} and {name} share the same tags in well {well}"
                )
        samples[name] = Sample(name, forward_tag, reverse_tag)
        self._sample_wells[name] = well

    def wells(self):
        return sorted(self._wells, key=well_sort_key)

    def samples(self, well):
        return list(self._wells.get(well, {}).values())

    def tags(self, well, sample):
        s = self._wells[well][sample]
        return s.forward_tag, s.reverse_tag

    def untagged_name(self, well):
        return f"{well}_{self.untagged_suffix}"

    def __contains__(self, well):
        return well in self._wells

    def __len__(self):
        return sum(len(s) for s in self._wells.values())


def _data_lines(fh):
    for line in fh:
        if line.strip() and not line.lstrip().startswith("#"):
            yield line


def read_barcode_table(path, registry):
    """
    Adds the samples of one CSV or TSV barcode table to ``registry``.

    The header must name the columns well, sample, forward_tag and reverse_tag
    (any case, any order); extra columns are ignored.
    """
    try:
        with open(path, newline="") as fh:
            lines = list(_data_lines(fh))
    except OSError as e:
        raise ConfigError(f"cannot read barcode table {path}: {e}") from e
    if not lines:
        raise ConfigError(f"barcode table {path} is empty")

    delimiter = "\t" if "\t" in lines[0] else ","
    reader = csv.reader(lines, delimiter=delimiter)
    header = [h.strip().lower() for h in next(reader)]
    missing = [c for c in REQUIRED_COLUMNS if c not in header]
    if missing:
        raise ConfigError(f"barcode table {path} lacks column(s): {', '.join(missing)}")
    index = {c: header.index(c) for c in REQUIRED_COLUMNS}

    for lineno, row in enumerate(reader, 2):
        if len(row) < len(header):
            raise ConfigError(f"{path}:{lineno}: expected {len(header)} fields, got {len(row)}")
        registry.add(
            row[index["well"]],
            row[index["sample"]],
            row[index["forward_tag"]],
            row[index["reverse_tag"]],
            source=f"{path}:{lineno}",
        )
    return registry


def load_barcode_tables(paths, untagged_suffix="untagged"):
    """Merges one or more barcode tables into a single SampleRegistry."""
    registry = SampleRegistry(untagged_suffix)
    for path in paths:
        read_barcode_table(path, registry)
    if len(registry) == 0:
        raise ConfigError("barcode tables define no samples")
    return registry
