#!/usr/bin/env python
# -*- coding: utf-8 -*-
#
# Copyright © 2024 Ye Chang yech1990@gmail.com
# Distributed under terms of the GNU license.
#
# Created: 2026-10-19 10:12

import logging
import shlex
import subprocess
from pathlib import Path

from .common import FORWARD, DIRECTIONS, DemultiplexError, WriteError
from .report import parse_report


def build_command(raw, direction, samples, output_dir, extension, untagged_name, settings):
    """
    Builds the cutadapt command that splits one raw file by sample tag.

    Each sample becomes a named, anchored 5' adapter: the forward tag for the
    forward reads and the reverse tag for the reverse reads. Tagged reads go to
    ``{sample}_{direction}.{extension}``, all others to the well's untagged file.

    :param raw: Raw read file of the well for this direction.
    :param direction: Read direction label.
    :param samples: Samples of the well.
    :type samples: list[welldemux.barcodes.Sample]
    :param output_dir: Directory receiving the per-sample files.
    :param extension: Output extension without the dot.
    :param untagged_name: Name of the well's untagged sample.
    :param settings: Run settings.
    :type settings: welldemux.common.DemuxConfig
    :rtype: list[str]
    """
    output_dir = Path(output_dir)
    cmd = shlex.split(settings.cutadapt)
    cmd += [
        "-j",
        str(settings.threads),
        "-e",
        str(settings.error_rate),
        "-O",
        str(settings.min_overlap),
    ]
    if settings.no_indels:
        cmd.append("--no-indels")
    for sample in samples:
        tag = sample.forward_tag if direction == FORWARD else sample.reverse_tag
        cmd += ["-g", f"{sample.name}=^{tag}"]
    cmd += [
        "-o",
        str(output_dir / f"{{name}}_{direction}.{extension}"),
        "--untrimmed-output",
        str(output_dir / f"{untagged_name}_{direction}.{extension}"),
        str(raw),
    ]
    return cmd


def run_steps(cmd, dry_run=False):
    """
    Runs one trimmer command and returns its (stdout, stderr).

    :raises DemultiplexError: If the command cannot be started or fails.
    """
    if dry_run:
        print(shlex.join(cmd))
        return "", ""
    try:
        process = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise DemultiplexError(f"cannot run {cmd[0]}: {e}") from e
    if process.returncode != 0:
        raise DemultiplexError(
            f"{cmd[0]} exited with status {process.returncode}:\n"
            f"{process.stderr.strip()}"
        )
    return process.stdout, process.stderr


def demultiplex_well(well_files, registry, output_dir, extension, settings):
    """
    Runs the trimmer on both raw files of a well.

    The text report of each run is kept under the report directory and parsed
    into per-sample counts.

    :return: dict of direction -> TrimReport, or None on a dry run.
    """
    output_dir = Path(output_dir)
    well = well_files.well
    samples = registry.samples(well)
    names = [s.name for s in samples]
    untagged = registry.untagged_name(well)

    reports = {}
    for direction in DIRECTIONS:
        raw = well_files.raw(direction)
        cmd = build_command(raw, direction, samples, output_dir, extension, untagged, settings)
        if settings.dry_run:
            run_steps(cmd, dry_run=True)
            continue
        logging.info(f"Demultiplexing well {well} {direction}: {raw.name}")
        stdout, stderr = run_steps(cmd)
        report_file = output_dir / settings.report_dir / f"{well}_{direction}.cutadapt.txt"
        try:
            report_file.parent.mkdir(parents=True, exist_ok=True)
            report_file.write_text(stdout)
        except OSError as e:
            raise WriteError(f"cannot save trimmer report {report_file}: {e}") from e
        reports[direction] = parse_report(stdout, names)
        logging.info(
            f"Well {well} {direction}: {reports[direction].total} reads, "
            f"{reports[direction].untagged} untagged"
        )
    return None if settings.dry_run else reports
