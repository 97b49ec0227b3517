import unittest
import sys
import os
import subprocess
import tempfile
from pathlib import Path
from unittest import mock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from welldemux.barcodes import SampleRegistry
from welldemux.common import DemultiplexError, DemuxConfig, WriteError
from welldemux.demultiplex import build_command, demultiplex_well, run_steps
from welldemux.discover import WellFiles


def report_text(total, with_adapters, counts):
    sections = "".join(
        f"=== Adapter {name} ===\n\nSequence: ACGT; Type: anchored 5'; Length: 4; Trimmed: {n} times\n\n"
        for name, n in counts.items()
    )
    return (
        f"=== Summary ===\n\nTotal reads processed: {total:,}\n"
        f"Reads with adapters: {with_adapters:,} (50.0%)\n\n{sections}"
    )


class TestBuildCommand(unittest.TestCase):
    def setUp(self):
        self.registry = SampleRegistry()
        self.registry.add("A1", "S1", "ACGTAC", "TTGACC")
        self.registry.add("A1", "S2", "GGATCC", "CATCAT")
        self.settings = DemuxConfig().validate()

    def test_forward_uses_forward_tags(self):
        cmd = build_command(
            "raw_A1_R1.fq.gz", "R1", self.registry.samples("A1"), "out", "fq", "A1_untagged", self.settings
        )
        self.assertEqual(cmd[0], "cutadapt")
        self.assertIn("S1=^ACGTAC", cmd)
        self.assertIn("S2=^GGATCC", cmd)
        self.assertEqual(cmd[cmd.index("-o") + 1], os.path.join("out", "{name}_R1.fq"))
        self.assertEqual(
            cmd[cmd.index("--untrimmed-output") + 1], os.path.join("out", "A1_untagged_R1.fq")
        )
        self.assertEqual(cmd[-1], "raw_A1_R1.fq.gz")
        self.assertNotIn("--no-indels", cmd)

    def test_reverse_uses_reverse_tags(self):
        self.settings.no_indels = True
        self.settings.error_rate = 0.1
        cmd = build_command(
            "raw_R2.fq", "R2", self.registry.samples("A1"), "out", "fa", "A1_untagged", self.settings
        )
        self.assertIn("S1=^TTGACC", cmd)
        self.assertIn("S2=^CATCAT", cmd)
        self.assertIn("--no-indels", cmd)
        self.assertEqual(cmd[cmd.index("-e") + 1], "0.1")
        self.assertTrue(cmd[cmd.index("-o") + 1].endswith("{name}_R2.fa"))

    def test_custom_command(self):
        self.settings.cutadapt = "python -m cutadapt"
        cmd = build_command("r.fq", "R1", [], "out", "fq", "A1_untagged", self.settings)
        self.assertEqual(cmd[:3], ["python", "-m", "cutadapt"])


class TestRunSteps(unittest.TestCase):
    def test_success(self):
        done = subprocess.CompletedProcess(["cutadapt"], 0, stdout="report", stderr="")
        with mock.patch("welldemux.demultiplex.subprocess.run", return_value=done) as run:
            self.assertEqual(run_steps(["cutadapt", "x"]), ("report", ""))
        run.assert_called_once_with(["cutadapt", "x"], capture_output=True, text=True)

    def test_failure(self):
        done = subprocess.CompletedProcess(["cutadapt"], 1, stdout="", stderr="bad input")
        with mock.patch("welldemux.demultiplex.subprocess.run", return_value=done):
            with self.assertRaises(DemultiplexError) as cm:
                run_steps(["cutadapt", "x"])
        self.assertIn("bad input", str(cm.exception))

    def test_missing_executable(self):
        with mock.patch("welldemux.demultiplex.subprocess.run", side_effect=FileNotFoundError("cutadapt")):
            with self.assertRaises(DemultiplexError):
                run_steps(["cutadapt"])

    def test_dry_run(self):
        with mock.patch("welldemux.demultiplex.subprocess.run") as run:
            with mock.patch("builtins.print") as printed:
                self.assertEqual(run_steps(["cutadapt", "-g", "S1=^ACGT"], dry_run=True), ("", ""))
        run.assert_not_called()
        printed.assert_called_once_with("cutadapt -g 'S1=^ACGT'")


class TestDemultiplexWell(unittest.TestCase):
    def test_reports_per_direction(self):
        registry = SampleRegistry()
        registry.add("A1", "S1", "ACGT", "TTGA")
        settings = DemuxConfig().validate()
        files = WellFiles("A1", Path("raw_A1_R1.fq"), Path("raw_A1_R2.fq"))
        outputs = [
            (report_text(10, 6, {"S1": 6}), ""),
            (report_text(1200, 1000, {"S1": 1000}), ""),
        ]
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch("welldemux.demultiplex.run_steps", side_effect=outputs) as run:
                reports = demultiplex_well(files, registry, tmp, "fq", settings)
            self.assertEqual(run.call_count, 2)
            self.assertEqual(run.call_args_list[0].args[0][-1], "raw_A1_R1.fq")
            self.assertEqual(reports["R1"].untagged, 4)
            self.assertEqual(reports["R2"].count("S1"), 1000)
            saved = Path(tmp) / "reports" / "A1_R2.cutadapt.txt"
            self.assertEqual(saved.read_text(), outputs[1][0])

    def test_unwritable_report_dir(self):
        registry = SampleRegistry()
        registry.add("A1", "S1", "ACGT", "TTGA")
        settings = DemuxConfig().validate()
        files = WellFiles("A1", Path("r1.fq"), Path("r2.fq"))
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "reports").write_text("not a directory")
            with mock.patch("welldemux.demultiplex.run_steps", return_value=(report_text(1, 1, {"S1": 1}), "")):
                with self.assertRaises(WriteError):
                    demultiplex_well(files, registry, tmp, "fq", settings)

    def test_dry_run_returns_none(self):
        registry = SampleRegistry()
        registry.add("A1", "S1", "ACGT", "TTGA")
        settings = DemuxConfig().validate()
        settings.dry_run = True
        files = WellFiles("A1", Path("r1.fq"), Path("r2.fq"))
        with mock.patch("welldemux.demultiplex.run_steps") as run:
            self.assertIsNone(demultiplex_well(files, registry, "out", "fq", settings))
        self.assertEqual(run.call_count, 2)
        self.assertTrue(all(c.kwargs == {"dry_run": True} for c in run.call_args_list))


if __name__ == '__main__':
    unittest.main()
