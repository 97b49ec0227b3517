#!/usr/bin/env python
# -*- coding: utf-8 -*-
#
# Copyright © 2024 Ye Chang yech1990@gmail.com
# Distributed under terms of the GNU license.
#
# Created: 2026-10-19 10:12

import argparse
import importlib.metadata
import json
import logging
import shutil
import sys
from pathlib import Path

import cutadapt

from .barcodes import load_barcode_tables
from .common import (
    ConfigError,
    DemultiplexError,
    DemuxConfig,
    MissingFileError,
    ReadFormatError,
    ReportFormatError,
    WriteError,
    load_config_file,
)
from .demultiplex import demultiplex_well
from .discover import discover_wells, read_format
from .ledger import CountLedger
from .pairing import PairingController
from .store import ReadFileStore

__version__ = importlib.metadata.version(__package__ or __name__)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s -  %(levelname)s - %(message)s",
)
logging.captureWarnings(True)

FATAL_ERRORS = (
    ConfigError,
    MissingFileError,
    ReadFormatError,
    ReportFormatError,
    DemultiplexError,
    WriteError,
)


def json_report(file, settings, input_dir, barcodes, output_dir, policies, failed, ledger):
    """
    Writes a JSON summary of the run.

    :param file: Path to the output JSON file.
    :param settings: Settings of the run.
    :type settings: welldemux.common.DemuxConfig
    :param input_dir: Directory of the raw read files.
    :param barcodes: Barcode table paths.
    :param output_dir: Output directory.
    :param policies: dict of well -> pairing policy applied to it.
    :param failed: Wells whose processing stopped on a write error.
    :param ledger: The count ledger.
    :type ledger: welldemux.ledger.CountLedger
    """
    d = {
        "tag": "welldemux report",
        "welldemux_version": __version__,
        "cutadapt_version": cutadapt.__version__,
        "input": {
            "input_dir": str(input_dir),
            "barcodes": [str(b) for b in barcodes],
        },
        "output_dir": str(output_dir),
        "settings": settings.to_dict(),
        "wells": {well: policy.value for well, policy in policies.items()},
        "failed_wells": failed,
        "counts": [
            {"well": well, "direction": direction, "sample": sample, **fields}
            for well, direction, sample, fields in ledger.export()
        ],
    }
    try:
        with open(file, "w") as json_file:
            json_file.write(json.dumps(d, indent=2))
    except OSError as e:
        raise WriteError(f"cannot write {file}: {e}") from e


def prepare_output_dir(output_dir, input_dir, force=False):
    """
    Creates the output directory, wiping an existing one only with ``force``.

    :raises ConfigError: If the directory is not empty and ``force`` is unset,
        or if wiping it would remove the input directory.
    """
    output_dir = Path(output_dir)
    if output_dir.exists():
        if not output_dir.is_dir():
            raise ConfigError(f"output path {output_dir} exists and is not a directory")
        if any(output_dir.iterdir()):
            if not force:
                raise ConfigError(
                    f"output directory {output_dir} is not empty (use --force to overwrite)"
                )
            input_dir = Path(input_dir).resolve()
            if output_dir.resolve() in (input_dir, *input_dir.parents):
                raise ConfigError(f"refusing to wipe {output_dir}: it holds the input files")
            logging.info(f"Removing existing output directory {output_dir}")
            shutil.rmtree(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def run_welldemux(args):
    """
    Sets up the configuration and processes every well.

    All configuration is checked before the trimmer runs. Wells are processed
    one after the other in well order.

    :param args: Parsed command-line arguments from argparse.
    :type args: argparse.Namespace
    :return: Exit status, 1 if a well could not be written completely.
    :rtype: int
    """
    settings = DemuxConfig()
    if args.config is not None:
        settings.update(load_config_file(args.config))
    for key in ("policy", "scrounge_mode", "error_rate", "min_overlap", "threads"):
        if getattr(args, key) is not None:
            setattr(settings, key, getattr(args, key))
    if args.no_indels:
        settings.no_indels = True
    settings.dry_run = args.dry_run
    settings.force = args.force
    settings.validate()

    registry = load_barcode_tables(args.barcodes, settings.untagged_suffix)
    wells = discover_wells(args.input_dir, args.conversion_table)
    for well in [w for w in wells if w not in registry]:
        logging.warning(f"Well {well} has raw files but no samples; skipping")
        del wells[well]
    for well in registry.wells():
        if well not in wells:
            logging.warning(f"Well {well} has samples but no raw files")
    if not wells:
        raise ConfigError("no well has both raw files and samples")

    formats = {read_format(p) for files in wells.values() for p in (files.r1, files.r2)}
    if len(formats) > 1:
        raise ConfigError("raw files mix FASTA and FASTQ formats")
    extension = "fa" if formats == {"fasta"} else "fq"

    output_dir = Path(args.output_dir)
    if settings.dry_run:
        for files in wells.values():
            demultiplex_well(files, registry, output_dir, extension, settings)
        return 0
    output_dir = prepare_output_dir(output_dir, args.input_dir, settings.force)

    ledger = CountLedger()
    controller = PairingController(
        ReadFileStore(output_dir, extension), ledger, settings.policy, settings.scrounge_mode
    )
    policies = {}
    failed = []
    for well, files in wells.items():
        reports = demultiplex_well(files, registry, output_dir, extension, settings)
        try:
            policies[well] = controller.process_well(
                well,
                [s.name for s in registry.samples(well)],
                registry.untagged_name(well),
                reports,
            )
        except WriteError as e:
            logging.error(f"Well {well}: {e}; skipping the rest of this well")
            failed.append(well)

    log_file = args.log_file if args.log_file else output_dir / settings.log_file
    ledger.write_csv(log_file, settings.policy, settings.scrounge_mode, settings.na_marker)
    logging.info(f"Read counts written to {log_file}")
    if args.json_file is not None:
        json_report(
            args.json_file,
            settings,
            args.input_dir,
            args.barcodes,
            output_dir,
            policies,
            failed,
            ledger,
        )
    if failed:
        logging.error(f"{len(failed)} well(s) incomplete: {', '.join(failed)}")
        return 1
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        description="Demultiplex paired reads of sample wells by inline tags and "
        "re-establish read pairs."
    )
    parser.add_argument(
        "-i",
        "--input-dir",
        type=str,
        required=True,
        help="Directory with the raw forward (_R1) and reverse (_R2) files of every well.",
    )
    parser.add_argument(
        "-b",
        "--barcodes",
        type=str,
        nargs="+",
        required=True,
        help="Barcode table(s), CSV or TSV with columns well, sample, forward_tag, reverse_tag.",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        type=str,
        required=True,
        help="Directory for demultiplexed reads, reports and the count log.",
    )
    parser.add_argument(
        "-c",
        "--conversion-table",
        type=str,
        help="Two column table mapping raw file name prefixes to wells. "
        "Without it, wells are read from file names (e.g. run_A01_R1.fastq.gz).",
    )
    parser.add_argument(
        "-p",
        "--pairing",
        dest="policy",
        choices=["none", "strict", "scrounge"],
        help="Pairing policy: keep tagged files as they are (none), write pairs and "
        "singletons (strict), or also rescue mates from untagged reads (scrounge). "
        "(Default: strict)",
    )
    parser.add_argument(
        "--scrounge-mode",
        choices=["merge", "separate"],
        help="Add rescued pairs to the paired files (merge) or write them to "
        ".scrounged files (separate). (Default: merge)",
    )
    parser.add_argument(
        "-e",
        "--error-rate",
        type=float,
        help="Maximum error rate for tag matching. (Default: 0.15)",
    )
    parser.add_argument(
        "-O",
        "--min-overlap",
        type=int,
        help="Minimum overlap between read and tag. (Default: 5)",
    )
    parser.add_argument(
        "--no-indels",
        action="store_true",
        help="Allow only mismatches when matching tags.",
    )
    parser.add_argument(
        "-t",
        "--threads",
        type=int,
        help="Number of cores used by the trimmer, 0 to autodetect. (Default: 1)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="TOML file overriding the [trimmer], [pairing] and [output] defaults.",
    )
    parser.add_argument(
        "-l",
        "--log-file",
        type=str,
        help="CSV file for per well/direction/sample read counts. "
        "(Default: <output-dir>/demux_log.csv)",
    )
    parser.add_argument(
        "--json-file",
        type=str,
        help="Output JSON file summarising the run.",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Wipe a non-empty output directory before running.",
    )
    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="Check the inputs and print the trimmer commands without running them.",
    )
    parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def main(argv=None):
    """
    Entry point of the ``welldemux`` command.
    """
    parser = build_parser()

    # Check if no arguments were provided
    if argv is None and len(sys.argv) == 1:
        parser.print_help(sys.stdout)
        sys.exit(0)

    args = parser.parse_args(argv)
    try:
        status = run_welldemux(args)
    except FATAL_ERRORS as e:
        logging.error(str(e))
        sys.exit(1)
    sys.exit(status)


if __name__ == "__main__":
    main()
