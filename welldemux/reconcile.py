"""
Set operations that re-establish mate pairs from two tagged read sets.

Reads are matched by id only; the trimmer is trusted to have attached the right
sequence to each id.
"""

from dataclasses import dataclass, field
from typing import Mapping, Optional, Set


def matepairs(r1: Mapping, r2: Mapping) -> Set[str]:
    """Ids present in both directions."""
    return r1.keys() & r2.keys()


def singles(whole: Mapping, exclude: Set[str]) -> Set[str]:
    """Ids of ``whole`` that are not in ``exclude``."""
    return whole.keys() - exclude


def rescue(singles_a: Set[str], untagged_b: Mapping) -> Set[str]:
    """
    Singles of one direction whose mate fell into the other direction's
    untagged pool.
    """
    return singles_a & untagged_b.keys()


@dataclass
class PairingOutcome:
    """
    Result of reconciling one sample of one well.

    ``matepairs``, ``scrounged`` and the two ``remaining`` sets are pairwise
    disjoint and together hold every id seen for the sample.
    """

    matepairs: Set[str]
    singles1: Set[str]
    singles2: Set[str]
    rescued1: Set[str] = field(default_factory=set)
    rescued2: Set[str] = field(default_factory=set)

    @property
    def scrounged(self) -> Set[str]:
        return self.rescued1 | self.rescued2

    @property
    def paired(self) -> Set[str]:
        return self.matepairs | self.scrounged

    @property
    def remaining1(self) -> Set[str]:
        return self.singles1 - self.scrounged

    @property
    def remaining2(self) -> Set[str]:
        return self.singles2 - self.scrounged


def reconcile(
    r1: Mapping,
    r2: Mapping,
    untagged1: Optional[Mapping] = None,
    untagged2: Optional[Mapping] = None,
) -> PairingOutcome:
    """
    Computes matepairs, singles and, when untagged pools are given, the reads
    rescued from them.

    A direction-1 single is rescued when its id is in the direction-2 untagged
    pool, and a direction-2 single when its id is in the direction-1 pool.

    :Example:
        >>> out = reconcile(dict.fromkeys("abc"), dict.fromkeys("bcd"), {}, dict.fromkeys("a"))
        >>> sorted(out.matepairs), sorted(out.scrounged), sorted(out.remaining2)
        (['b', 'c'], ['a'], ['d'])
    """
    pairs = matepairs(r1, r2)
    outcome = PairingOutcome(pairs, singles(r1, pairs), singles(r2, pairs))
    if untagged2 is not None:
        outcome.rescued1 = rescue(outcome.singles1, untagged2)
    if untagged1 is not None:
        outcome.rescued2 = rescue(outcome.singles2, untagged1)
    return outcome
