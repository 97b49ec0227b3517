import csv
import logging
import re
from pathlib import Path
from typing import NamedTuple

from .common import (
    FORWARD,
    REVERSE,
    ConfigError,
    normalize_well,
    remove_fq_suffix,
    well_sort_key,
)

_EXT_RE = re.compile(r"\.(fastq|fq|fasta|fa)(\.gz)?$")
_DIRECTION_RE = re.compile(rf"_(?P<dir>{FORWARD}|{REVERSE})(_001)?$")
_WELL_TOKEN_RE = re.compile(r"^[A-Pa-p]\d{1,3}$")


class WellFiles(NamedTuple):
    well: str
    r1: Path
    r2: Path

    def raw(self, direction):
        return self.r1 if direction == FORWARD else self.r2


def split_fq_name(filename):
    """
    Splits a raw read file name into its stem and read direction.

    :Example:
        >>> split_fq_name("Plate1_A01_R2_001.fastq.gz")
        ('Plate1_A01', 'R2')
        >>> split_fq_name("notes.txt")
        ('notes.txt', None)
    """
    m = _EXT_RE.search(filename)
    if m is None:
        return filename, None
    base = filename[: m.start()]
    d = _DIRECTION_RE.search(base)
    return remove_fq_suffix(filename), d.group("dir") if d else None


def well_from_name(stem):
    """Last '_'-separated token of a file stem that looks like a plate well."""
    for token in reversed(stem.split("_")):
        if _WELL_TOKEN_RE.match(token):
            return normalize_well(token)
    return None


def read_format(path):
    """'fasta' for FASTA file names, otherwise 'fastq'."""
    name = Path(path).name.lower().removesuffix(".gz")
    return "fasta" if name.endswith((".fa", ".fasta")) else "fastq"


def read_conversion_table(path):
    """
    Reads a two column table mapping file name prefixes to wells.

    :return: list of (prefix, well), longest prefix first.
    :raises ConfigError: If the table is unreadable or malformed.
    """
    try:
        with open(path, newline="") as fh:
            lines = [line for line in fh if line.strip() and not line.startswith("#")]
    except OSError as e:
        raise ConfigError(f"cannot read conversion table {path}: {e}") from e
    if not lines:
        raise ConfigError(f"conversion table {path} is empty")
    delimiter = "\t" if "\t" in lines[0] else ","
    rows = list(csv.reader(lines, delimiter=delimiter))
    header = [h.strip().lower() for h in rows[0]]
    if header[:2] == ["file_prefix", "well"]:
        rows = rows[1:]
    table = {}
    for row in rows:
        if len(row) < 2 or not row[0].strip() or not row[1].strip():
            raise ConfigError(f"conversion table {path}: malformed row {row!r}")
        prefix = row[0].strip()
        if prefix in table:
            raise ConfigError(f"conversion table {path}: prefix {prefix} listed twice")
        table[prefix] = normalize_well(row[1])
    return sorted(table.items(), key=lambda kv: len(kv[0]), reverse=True)


def discover_wells(input_dir, conversion_table=None):
    """
    Pairs the raw forward and reverse files of every well in ``input_dir``.

    Without a conversion table the well is read from the file name (for
    example ``run1_B07_R1.fastq.gz`` belongs to well B7).

    :return: dict of well -> WellFiles in well order.
    :raises ConfigError: If a well lacks a direction, has two files for one
        direction, or no well is found at all.
    """
    input_dir = Path(input_dir)
    if not input_dir.is_dir():
        raise ConfigError(f"input directory {input_dir} does not exist")
    prefixes = read_conversion_table(conversion_table) if conversion_table else None

    found = {}
    for path in sorted(input_dir.iterdir()):
        if not path.is_file():
            continue
        stem, direction = split_fq_name(path.name)
        if direction is None:
            continue
        if prefixes is not None:
            well = next((w for p, w in prefixes if path.name.startswith(p)), None)
        else:
            well = well_from_name(stem)
        if well is None:
            logging.warning(f"Cannot assign {path.name} to a well; skipping")
            continue
        files = found.setdefault(well, {})
        if direction in files:
            raise ConfigError(
                f"well {well} has two {direction} files: {files[direction].name} and {path.name}"
            )
        files[direction] = path

    if not found:
        raise ConfigError(f"no raw read files found in {input_dir}")
    wells = {}
    for well in sorted(found, key=well_sort_key):
        files = found[well]
        for direction in (FORWARD, REVERSE):
            if direction not in files:
                raise ConfigError(f"well {well} has no {direction} file")
        wells[well] = WellFiles(well, files[FORWARD], files[REVERSE])
    return wells
