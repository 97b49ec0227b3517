"""
Reading and writing of the per-sample read files exchanged with the trimmer.

Files are intermediate: once a file is loaded into a read set it is removed
from disk, and the final outputs are written back from the read sets.
"""

import logging
import os
import warnings
from pathlib import Path
from typing import Dict, Iterable, NamedTuple

from .common import CleanupWarning, MissingFileError, ReadFormatError, WriteError


class ReadRecord(NamedTuple):
    """
    A single sequencing read.

    :ivar id: Header token after the marker, up to the first whitespace.
    :ivar header: The full header line, written back verbatim.
    :ivar payload: The remaining lines of the record joined by newlines.
    """

    id: str
    header: str
    payload: str


ReadSet = Dict[str, ReadRecord]

FASTA_MARKER = ">"
FASTQ_MARKER = "@"

# bytes outside ASCII are carried through unchanged from load to save
ENCODING = "ascii"
ERRORS = "surrogateescape"


def _read_id(header, path, lineno):
    fields = header[1:].split(None, 1)
    if not fields or header[1:2].isspace():
        raise ReadFormatError(f"{path}:{lineno}: header without read id")
    return fields[0]


def parse_records(lines, path="<stream>"):
    """
    Parses header/payload records from an iterable of lines.

    The record marker is the first character of the first non-empty line.
    Lines starting with the marker open a new record, every other line is
    payload of the current one. With the FASTQ marker the reader follows
    sequence, separator and quality lines, and a record ends once its quality
    string is as long as its sequence, so quality lines starting with ``@``
    stay payload.

    :param lines: Iterable of text lines, with or without line endings.
    :param path: Name used in error messages.
    :return: Generator of ReadRecord.
    :raises ReadFormatError: If payload appears before the first header or a
        header has no id.
    """
    marker = None
    header = None
    header_lineno = 0
    payload = []
    # FASTQ state: "seq" until the "+" separator, then "qual" until complete
    state = None
    seq_len = qual_len = 0

    for lineno, line in enumerate(lines, 1):
        line = line.rstrip("\r\n")
        if marker is None:
            if not line:
                continue
            marker = line[0]
            if marker not in (FASTA_MARKER, FASTQ_MARKER):
                raise ReadFormatError(
                    f"{path}:{lineno}: expected a '>' or '@' header, got {line[:20]!r}"
                )

        is_header = line.startswith(marker)
        if marker == FASTQ_MARKER and state is not None:
            is_header = is_header and state == "qual" and qual_len >= seq_len

        if is_header:
            if header is not None:
                yield ReadRecord(_read_id(header, path, header_lineno), header, "\n".join(payload))
            header = line
            header_lineno = lineno
            payload = []
            state = "seq" if marker == FASTQ_MARKER else None
            seq_len = qual_len = 0
            continue

        if header is None:
            raise ReadFormatError(f"{path}:{lineno}: payload before the first header")
        payload.append(line)
        if state == "seq":
            if line.startswith("+"):
                state = "qual"
            else:
                seq_len += len(line)
        elif state == "qual":
            qual_len += len(line)

    if header is not None:
        yield ReadRecord(_read_id(header, path, header_lineno), header, "\n".join(payload))


class ReadFileStore:
    """
    Loads and saves read sets inside one output directory.

    :param output_dir: Directory holding the trimmer's per-sample files and the
        final outputs.
    :param extension: File extension without the dot, e.g. ``fq`` or ``fa``.
    """

    def __init__(self, output_dir, extension="fq"):
        self.output_dir = Path(output_dir)
        self.extension = extension

    def path_for(self, sample, direction, suffix=None):
        name = f"{sample}_{direction}"
        if suffix:
            name += f".{suffix}"
        return self.output_dir / f"{name}.{self.extension}"

    def load(self, path) -> ReadSet:
        """
        Reads a whole file into a read set and removes the file afterwards.

        :raises MissingFileError: If the file cannot be opened.
        :raises ReadFormatError: If the content is not header/payload records.
        """
        path = Path(path)
        reads = {}
        try:
            with open(path, encoding=ENCODING, errors=ERRORS) as fh:
                for record in parse_records(fh, path):
                    if record.id in reads:
                        logging.warning(f"Duplicate read id {record.id} in {path}, keeping the last")
                    reads[record.id] = record
        except FileNotFoundError as e:
            raise MissingFileError(
                f"expected read file {path} does not exist; the trimmer may have failed"
            ) from e
        except (IsADirectoryError, PermissionError) as e:
            raise MissingFileError(f"cannot open read file {path}: {e}") from e

        self.discard(path)
        return reads

    def discard(self, path):
        """
        Removes an intermediate file, if it exists, without reading it.

        A file that cannot be removed only emits a CleanupWarning.
        """
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            warnings.warn(f"could not remove consumed file {path}: {e}", CleanupWarning)

    def load_bucket(self, sample, direction, count) -> ReadSet:
        """
        Loads the file of one sample and direction.

        With a zero count the file is not read, only discarded: the trimmer
        writes an empty file for every sample.
        """
        path = self.path_for(sample, direction)
        if count == 0:
            self.discard(path)
            return {}
        return self.load(path)

    def save(self, sample, direction, suffix, reads: ReadSet, ids: Iterable[str]):
        """
        Writes the records of ``reads`` whose id is in ``ids``, sorted by id.

        :return: Number of records written.
        :raises WriteError: If the destination cannot be created.
        """
        path = self.path_for(sample, direction, suffix)
        ordered = sorted(ids)
        try:
            with open(path, "w", encoding=ENCODING, errors=ERRORS) as fh:
                for read_id in ordered:
                    record = reads[read_id]
                    fh.write(f"{record.header}\n{record.payload}\n")
        except OSError as e:
            raise WriteError(f"cannot write {path}: {e}") from e
        return len(ordered)
