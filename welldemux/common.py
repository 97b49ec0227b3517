import logging
import re
from enum import Enum
from importlib import resources

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11

# This is the common module for welldemux
# It will contain shared classes, errors and configuration


class ConfigError(Exception):
    """Invalid configuration: policy, barcode table, conversion table or paths."""


class MissingFileError(OSError):
    """An expected input or intermediate read file is absent or unreadable."""


class WriteError(OSError):
    """An output file could not be created."""


class ReadFormatError(ValueError):
    """A read file does not follow the header/payload record layout."""


class ReportFormatError(ValueError):
    """The trimmer report does not match the expected grammar."""


class DemultiplexError(RuntimeError):
    """The external trimmer could not be run or exited with an error."""


class LedgerConflictError(ValueError):
    """A ledger metric was recorded twice with different values."""


class CleanupWarning(UserWarning):
    """A consumed temporary file could not be removed."""


def load_defaults() -> dict:
    """Loads the built-in settings from the packaged 'defaults.toml' file."""
    try:
        return tomllib.loads(
            resources.files("welldemux")
            .joinpath("defaults.toml")
            .read_text(encoding="utf-8")
        )
    except Exception as e:
        logging.error(f"Error loading or parsing 'defaults.toml': {e}")
        raise e


DEFAULTS = load_defaults()

FORWARD = DEFAULTS["directions"]["forward"]
REVERSE = DEFAULTS["directions"]["reverse"]
DIRECTIONS = (FORWARD, REVERSE)


def opposite(direction):
    """
    Returns the mate direction of a read direction.

    :param direction: One of the configured direction labels.
    :type direction: str
    :return: The other direction label.
    :rtype: str
    """
    if direction == FORWARD:
        return REVERSE
    if direction == REVERSE:
        return FORWARD
    raise ValueError(f"unknown read direction {direction!r}")


class Policy(str, Enum):
    """How read pairs are re-established after demultiplexing."""

    NONE = "none"
    STRICT = "strict"
    SCROUNGE = "scrounge"


class ScroungeMode(str, Enum):
    """Where rescued pairs are written under the scrounge policy."""

    MERGE = "merge"
    SEPARATE = "separate"


def parse_policy(value):
    if isinstance(value, Policy):
        return value
    try:
        return Policy(str(value).lower())
    except ValueError:
        choices = ", ".join(p.value for p in Policy)
        raise ConfigError(
            f"pairing policy {value!r} is not valid (choose from {choices})"
        ) from None


def parse_scrounge_mode(value):
    if isinstance(value, ScroungeMode):
        return value
    try:
        return ScroungeMode(str(value).lower())
    except ValueError:
        choices = ", ".join(m.value for m in ScroungeMode)
        raise ConfigError(
            f"scrounge mode {value!r} is not valid (choose from {choices})"
        ) from None


_WELL_RE = re.compile(r"^(?P<row>[A-Za-z])0*(?P<col>\d+)$")


def normalize_well(well):
    """
    Normalises a well identifier by upper-casing the row letter and stripping
    zero padding from the column number.

    :Example:
        >>> normalize_well("a01")
        'A1'
        >>> normalize_well("H12")
        'H12'
    """
    well = well.strip()
    m = _WELL_RE.match(well)
    if m is None:
        return well
    return f"{m.group('row').upper()}{int(m.group('col'))}"


def well_sort_key(well):
    """Sort key placing plate wells by row then numeric column, others after."""
    m = _WELL_RE.match(well)
    if m is None:
        return (1, well, 0)
    return (0, m.group("row").upper(), int(m.group("col")))


def remove_fq_suffix(f):
    """
    Removes common read file extensions and direction markers from a filename.

    Longer, more specific suffixes are tried first.

    :Example:
        >>> remove_fq_suffix("A01_R1_001.fastq.gz")
        'A01'
        >>> remove_fq_suffix("plate.fa")
        'plate'
    """
    suffixes = [
        f"{base}.{ext}"
        for ext in ["fastq.gz", "fq.gz", "fasta.gz", "fa.gz", "fastq", "fq", "fasta", "fa"]
        for base in ["_R1_001", "_R2_001", "_R1", "_R2", ""]
    ]

    for suffix in suffixes:
        if f.endswith(suffix):
            return f.removesuffix(suffix)
    return f


class DemuxConfig:
    """
    Settings for a demultiplexing run.

    Values start from the packaged defaults, can be overridden by a user TOML
    file with :meth:`update` and finally by command line options.
    """

    SECTIONS = {
        "trimmer": ("cutadapt", "error_rate", "min_overlap", "no_indels", "threads"),
        "pairing": ("policy", "scrounge_mode"),
        "output": ("untagged_suffix", "na_marker", "log_file", "report_dir"),
    }

    def __init__(self, defaults=None):
        self.dry_run = False
        self.force = False
        self.update(DEFAULTS if defaults is None else defaults, strict=False)

    def update(self, table, strict=True):
        """
        Applies settings from a parsed TOML document.

        :param table: Mapping of section name to a mapping of settings.
        :type table: dict
        :param strict: Reject sections and keys this configuration does not know.
        :type strict: bool
        :raises ConfigError: On unknown sections or keys when ``strict`` is set.
        """
        for section, values in table.items():
            if section not in self.SECTIONS:
                if strict:
                    raise ConfigError(f"unknown configuration section [{section}]")
                continue
            if not isinstance(values, dict):
                raise ConfigError(f"configuration section [{section}] must be a table")
            for key, value in values.items():
                if key not in self.SECTIONS[section]:
                    raise ConfigError(f"unknown configuration key {section}.{key}")
                setattr(self, key, value)

    def validate(self):
        self.policy = parse_policy(self.policy)
        self.scrounge_mode = parse_scrounge_mode(self.scrounge_mode)
        if not 0 <= float(self.error_rate) < 1:
            raise ConfigError(f"error rate must be in [0, 1), got {self.error_rate}")
        if int(self.min_overlap) < 1:
            raise ConfigError(f"minimum overlap must be positive, got {self.min_overlap}")
        if int(self.threads) < 0:
            raise ConfigError(f"threads must not be negative, got {self.threads}")
        if not self.untagged_suffix:
            raise ConfigError("untagged sample suffix must not be empty")
        return self

    def untagged_name(self, well):
        return f"{well}_{self.untagged_suffix}"

    def to_dict(self):
        """
        Converts the settings to a dictionary for the JSON run summary.

        :rtype: dict
        """
        d = {}
        for keys in self.SECTIONS.values():
            for key in keys:
                value = getattr(self, key)
                d[key] = value.value if isinstance(value, Enum) else value
        return d


def load_config_file(path):
    """
    Reads a user configuration TOML file.

    :param path: Path to the TOML file.
    :raises ConfigError: If the file cannot be read or parsed.
    """
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except OSError as e:
        raise ConfigError(f"cannot read configuration file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"configuration file {path} is not valid TOML: {e}") from e
