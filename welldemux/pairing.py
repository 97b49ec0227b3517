"""
Per-well pairing policies.

After the trimmer has split a well's reads into per-sample tagged files and one
untagged file per direction, the controller turns them into the final output
files and records every count in the ledger:

* ``none``: the tagged files are the final output.
* ``strict``: mates found in both directions are written as pairs, the rest
  as ``.singletons``.
* ``scrounge``: singles whose mate lost its tag are recovered from the other
  direction's untagged reads. With ``separate`` the recovered pairs go to
  ``.scrounged`` files, with ``merge`` they are added to the paired files.
  Untagged reads nobody claimed are written as ``.postscrounge``.
"""

import logging
from collections import ChainMap

from .common import DIRECTIONS, FORWARD, REVERSE, Policy, ScroungeMode
from .reconcile import reconcile


def effective_policy(policy, untagged_counts):
    """
    Policy actually applied to a well.

    Scrounging needs untagged reads: a well without any falls back to strict.
    The configured policy itself is left unchanged.

    :param policy: Configured policy.
    :type policy: Policy
    :param untagged_counts: Untagged read counts of the well, one per direction.
    :rtype: Policy
    """
    if policy == Policy.SCROUNGE and not any(untagged_counts):
        return Policy.STRICT
    return policy


class PairingController:
    """
    Applies a pairing policy to one well at a time.

    :param store: Store giving access to the trimmer's files and the outputs.
    :type store: welldemux.store.ReadFileStore
    :param ledger: Shared count ledger.
    :type ledger: welldemux.ledger.CountLedger
    :param policy: Configured pairing policy.
    :type policy: Policy
    :param scrounge_mode: Where rescued pairs go under Policy.SCROUNGE.
    :type scrounge_mode: ScroungeMode
    """

    def __init__(self, store, ledger, policy, scrounge_mode=ScroungeMode.MERGE):
        self.store = store
        self.ledger = ledger
        self.policy = policy
        self.scrounge_mode = scrounge_mode

    def process_well(self, well, samples, untagged, reports):
        """
        Reconciles every sample of a well.

        :param well: Well id.
        :param samples: Sample names of the well.
        :param untagged: Name of the well's untagged sample.
        :param reports: dict of direction -> TrimReport for this well.
        :return: The policy applied to this well.
        :rtype: Policy
        """
        for direction in DIRECTIONS:
            report = reports[direction]
            for sample in samples:
                self.ledger.record(well, direction, sample, "tagged_found", report.count(sample))
            self.ledger.record(well, direction, untagged, "tagged_found", report.untagged)

        policy = effective_policy(self.policy, [reports[d].untagged for d in DIRECTIONS])
        if policy != self.policy:
            logging.warning(
                f"Well {well} has no untagged reads, pairing it as {policy.value} "
                f"instead of {self.policy.value}"
            )
        if policy == Policy.NONE:
            return policy

        pools = used = None
        if policy == Policy.SCROUNGE:
            pools = {
                d: self.store.load_bucket(untagged, d, reports[d].untagged)
                for d in DIRECTIONS
            }
            used = {d: set() for d in DIRECTIONS}

        for sample in samples:
            counts = {d: reports[d].count(sample) for d in DIRECTIONS}
            if not any(counts.values()):
                for direction in DIRECTIONS:
                    self.store.discard(self.store.path_for(sample, direction))
                continue
            reads = {d: self.store.load_bucket(sample, d, counts[d]) for d in DIRECTIONS}
            if policy == Policy.STRICT:
                self._pair_strict(well, sample, reads)
            else:
                outcome = self._pair_scrounge(well, sample, reads, pools)
                # forward singles take their mate from the reverse pool and vice versa
                used[REVERSE] |= outcome.rescued1
                used[FORWARD] |= outcome.rescued2

        if policy == Policy.SCROUNGE:
            for direction in DIRECTIONS:
                leftover = pools[direction].keys() - used[direction]
                self.ledger.record(well, direction, untagged, "reads_post_scrounging", len(leftover))
                if leftover:
                    self.store.save(untagged, direction, "postscrounge", pools[direction], leftover)

        logging.info(f"Well {well}: {len(samples)} samples paired ({policy.value})")
        return policy

    def _record_pairs(self, well, sample, outcome):
        singles = {FORWARD: outcome.singles1, REVERSE: outcome.singles2}
        for direction in DIRECTIONS:
            self.ledger.record(well, direction, sample, "matepairs_found", len(outcome.matepairs))
            self.ledger.record(well, direction, sample, "singletons", len(singles[direction]))

    def _pair_strict(self, well, sample, reads):
        outcome = reconcile(reads[FORWARD], reads[REVERSE])
        self._record_pairs(well, sample, outcome)
        singles = {FORWARD: outcome.singles1, REVERSE: outcome.singles2}
        for direction in DIRECTIONS:
            if outcome.matepairs:
                self.store.save(sample, direction, None, reads[direction], outcome.matepairs)
            if singles[direction]:
                self.store.save(sample, direction, "singletons", reads[direction], singles[direction])
        return outcome

    def _pair_scrounge(self, well, sample, reads, pools):
        outcome = reconcile(reads[FORWARD], reads[REVERSE], pools[FORWARD], pools[REVERSE])
        self._record_pairs(well, sample, outcome)
        scrounged = outcome.scrounged
        remaining = {FORWARD: outcome.remaining1, REVERSE: outcome.remaining2}
        # rescued mates live in the untagged pool of their direction
        sources = {d: ChainMap(reads[d], pools[d]) for d in DIRECTIONS}

        for direction in DIRECTIONS:
            self.ledger.record(well, direction, sample, "matepairs_scrounged", len(scrounged))
            if self.scrounge_mode == ScroungeMode.SEPARATE:
                if outcome.matepairs:
                    self.store.save(sample, direction, None, reads[direction], outcome.matepairs)
                if scrounged:
                    self.store.save(sample, direction, "scrounged", sources[direction], scrounged)
            else:
                paired = outcome.paired
                self.ledger.record(well, direction, sample, "total_paired_written", len(paired))
                if paired:
                    self.store.save(sample, direction, None, sources[direction], paired)
            self.ledger.record(
                well, direction, sample, "singletons_remain", len(remaining[direction])
            )
            if remaining[direction]:
                self.store.save(
                    sample, direction, "singletons", reads[direction], remaining[direction]
                )
        return outcome
