import unittest
import sys
import os
import tempfile
from pathlib import Path

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from welldemux.common import ConfigError
from welldemux.discover import (
    discover_wells,
    read_conversion_table,
    read_format,
    split_fq_name,
    well_from_name,
)


class TestNames(unittest.TestCase):
    def test_split_fq_name(self):
        self.assertEqual(split_fq_name("Plate1_A01_R2_001.fastq.gz"), ("Plate1_A01", "R2"))
        self.assertEqual(split_fq_name("B7_R1.fq"), ("B7", "R1"))
        self.assertEqual(split_fq_name("B7.fq"), ("B7", None))
        self.assertEqual(split_fq_name("notes.txt"), ("notes.txt", None))

    def test_well_from_name(self):
        self.assertEqual(well_from_name("run3_H012"), "H12")
        self.assertEqual(well_from_name("A01_lane2_C3"), "C3")
        self.assertIsNone(well_from_name("lane_two"))

    def test_read_format(self):
        self.assertEqual(read_format("x_R1.fastq.gz"), "fastq")
        self.assertEqual(read_format("x_R1.fa.gz"), "fasta")
        self.assertEqual(read_format("x_R1.FASTA"), "fasta")


class TestDiscoverWells(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def touch(self, *names):
        for name in names:
            (self.dir / name).write_text("")

    def test_naming_convention(self):
        self.touch(
            "run_B01_R1.fastq.gz",
            "run_B01_R2.fastq.gz",
            "run_A10_R1.fastq.gz",
            "run_A10_R2.fastq.gz",
            "run_A02_R1_001.fastq.gz",
            "run_A02_R2_001.fastq.gz",
            "README.txt",
        )
        wells = discover_wells(self.dir)
        self.assertEqual(list(wells), ["A2", "A10", "B1"])
        self.assertEqual(wells["B1"].r1.name, "run_B01_R1.fastq.gz")
        self.assertEqual(wells["B1"].raw("R2").name, "run_B01_R2.fastq.gz")

    def test_unassignable_file_is_skipped(self):
        self.touch("run_A1_R1.fq", "run_A1_R2.fq", "undetermined_R1.fq")
        with self.assertLogs(level="WARNING"):
            wells = discover_wells(self.dir)
        self.assertEqual(list(wells), ["A1"])

    def test_missing_direction(self):
        self.touch("run_A1_R1.fq", "run_A2_R1.fq", "run_A2_R2.fq")
        with self.assertRaises(ConfigError):
            discover_wells(self.dir)

    def test_duplicate_direction(self):
        self.touch("x_A1_R1.fq", "y_A01_R1.fq", "x_A1_R2.fq")
        with self.assertRaises(ConfigError):
            discover_wells(self.dir)

    def test_empty_directory(self):
        with self.assertRaises(ConfigError):
            discover_wells(self.dir)
        with self.assertRaises(ConfigError):
            discover_wells(self.dir / "absent")

    def test_conversion_table(self):
        self.touch("lib12_R1.fq", "lib12_R2.fq", "lib1_R1.fq", "lib1_R2.fq")
        table = self.dir / "wells.tsv"
        table.write_text("file_prefix\twell\nlib1_\tA01\nlib12\tC05\n")
        wells = discover_wells(self.dir, table)
        self.assertEqual(list(wells), ["A1", "C5"])
        self.assertEqual(wells["C5"].r1.name, "lib12_R1.fq")

    def test_conversion_table_errors(self):
        table = self.dir / "wells.csv"
        table.write_text("lib1,A1\nlib1,A2\n")
        with self.assertRaises(ConfigError):
            read_conversion_table(table)
        table.write_text("lib1\n")
        with self.assertRaises(ConfigError):
            read_conversion_table(table)

    def test_conversion_table_without_header(self):
        table = self.dir / "wells.csv"
        table.write_text("a,A1\nabc,B2\n")
        self.assertEqual(read_conversion_table(table), [("abc", "B2"), ("a", "A1")])


if __name__ == '__main__':
    unittest.main()
