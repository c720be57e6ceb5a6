"""
Recording encounters and retroactive matching against disclosed keys

Observations are stored as-is when they happen. Only once a diagnosed
person's key is published do we regenerate their EphIDs, day by day from
the onset date, and check them against what we observed on that day.
"""

__copyright__ = """
    Copyright 2020 EPFL

    Licensed under the Apache License, Version 2.0 (the "License");
    you may not use this file except in compliance with the License.
    You may obtain a copy of the License at

        http://www.apache.org/licenses/LICENSE-2.0

    Unless required by applicable law or agreed to in writing, software
    distributed under the License is distributed on an "AS IS" BASIS,
    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
    See the License for the specific language governing permissions and
    limitations under the License.
"""
__license__ = "Apache 2.0"

import threading

from startrace.cases import DisclosureAction, KnownCase
from startrace.config import LENGTH_EPHID
from startrace.crypto import generate_ephids_for_day, next_day_key
from startrace.epoch import EpochClock, seconds_from_time
from startrace.errors import MalformedDisclosure
from startrace.log import get_logger
from startrace.store import EncounterRecord


def find_match(key, onset, today, records_on_day):
    """Find the first stored encounter explained by a disclosed key

    Walks from onset up to, but excluding, today. The key is advanced one
    hash step per day whether or not anything was observed on that day.

    Args:
        key (byte array): The disclosed 32-byte key, valid on onset
        onset (:obj:`startrace.epoch.Day`): Day of the disclosed key
        today (:obj:`startrace.epoch.Day`): First day not to check
        records_on_day (callable): Returns the encounter records of a day

    Returns:
        :obj:`startrace.store.EncounterRecord` or None: The first match
    """
    day = onset
    key_for_day = key

    while day < today:
        records = records_on_day(day)
        if records:
            ephids = set(generate_ephids_for_day(key_for_day))
            for record in records:
                if record.observed in ephids:
                    return record

        day = day.next
        key_for_day = next_day_key(key_for_day)

    return None


class MatchResult:
    """Outcome of checking one known case. Truthy if a record matched"""

    __slots__ = ("known_case", "record")

    def __init__(self, known_case, record=None):
        self.known_case = known_case
        self.record = record

    def __bool__(self):
        return self.record is not None

    def __repr__(self):
        return "<MatchResult case {} record {}>".format(
            self.known_case.id, self.record.identifier if self.record else None
        )


class DisclosureReport:
    """Summary of processing a batch of disclosures"""

    def __init__(self):
        #: :obj:`MatchResult` for every added case that matched
        self.matches = []
        #: Revoked case id -> number of encounters it no longer explains
        self.revoked = {}
        #: Number of entries skipped because they could not be parsed
        self.skipped = 0
        #: Highest case id processed in this batch, or None
        self.last_case_id = None

    @property
    def exposed(self):
        return bool(self.matches)

    def __repr__(self):
        return "<DisclosureReport matches={} revoked={} skipped={}>".format(
            len(self.matches), len(self.revoked), self.skipped
        )


class ExposureMatcher:
    """Matching algorithm over an encounter store

    Remembers the cases that matched, so that revoking one case can hand its
    encounters over to another case that also explains them.

    Args:
        store (:obj:`startrace.store.EncounterStore`): The encounter store
        clock (:obj:`startrace.epoch.EpochClock`, optional): The wall clock
    """

    def __init__(self, store, clock=None, log=None):
        self._store = store
        self._clock = clock or EpochClock()
        self._log = log or get_logger("matcher")
        self._matched_cases = {}
        self._lock = threading.Lock()

    def record_encounter(self, observed, signal=None, now=None):
        """Store an observed EphID

        No cryptographic matching happens here. If the same EphID was already
        attributed to a known case, the new record inherits that case.

        Args:
            observed (byte array): The received EphID
            signal (:obj:`startrace.store.SignalMetadata`, optional): Radio data
            now (:obj:`datetime.datetime` or number, optional): Time of the
                observation, defaults to the clock

        Returns:
            :obj:`startrace.store.EncounterRecord`: The stored record

        Raises:
            ValueError: If observed does not have the length of an EphID
        """
        if len(observed) != LENGTH_EPHID:
            raise ValueError(
                "EphIDs must be {} bytes, got {}".format(LENGTH_EPHID, len(observed))
            )

        timestamp = self._clock.now() if now is None else seconds_from_time(now)
        existing = self._store.existing_match(bytes(observed))
        record = self._store.append(EncounterRecord(timestamp, observed, signal, existing))

        self._log.debug("encounter_recorded", record=record.identifier, matched=existing)
        return record

    def check_known_case(self, known_case, today=None):
        """Check whether we met a known case since its onset

        Stops at the first matching encounter and associates it with the
        case, unless it was already attributed to another case.

        Args:
            known_case (:obj:`startrace.cases.KnownCase`): The disclosed case
            today (:obj:`startrace.epoch.Day`, optional): Defaults to the clock

        Returns:
            :obj:`MatchResult`
        """
        if today is None:
            today = self._clock.today()

        record = find_match(
            known_case.key, known_case.onset_day, today, self._store.records_on_day
        )
        if record is None:
            return MatchResult(known_case)

        if record.matched_case_id is None:
            self._store.mark_matched(record.identifier, known_case.id)
            record.matched_case_id = known_case.id
        with self._lock:
            self._matched_cases[known_case.id] = known_case

        self._log.info("exposure_match", case=known_case.id, record=record.identifier)
        return MatchResult(known_case, record)

    def revoke_known_case(self, case_id, today=None):
        """Forget every association with a revoked case

        Encounters released by the case are checked again against the other
        cases that matched earlier, in ascending id order.

        Args:
            case_id (int): The revoked case
            today (:obj:`startrace.epoch.Day`, optional): Defaults to the clock

        Returns:
            int: Number of encounters that were associated with the case
        """
        with self._lock:
            self._matched_cases.pop(case_id, None)
            remaining = sorted(self._matched_cases.items())

        cleared = self._store.clear_matches(case_id)
        self._log.info("known_case_revoked", case=case_id, cleared=cleared)

        if cleared:
            for _, known_case in remaining:
                self.check_known_case(known_case, today)
        return cleared

    def forget(self):
        """Drop the remembered cases, e.g. after the encounter store was emptied"""
        with self._lock:
            self._matched_cases.clear()

    def process_disclosures(self, entries, today=None, after_id=None):
        """Apply a batch of disclosures received from the backend

        Malformed entries are logged and skipped. Valid entries are applied
        in ascending id order: ADD is checked against stored encounters,
        REMOVE revokes earlier matches of the case with the same id.

        Args:
            entries (iterable): Disclosure dicts or :obj:`KnownCase` objects
            today (:obj:`startrace.epoch.Day`, optional): Defaults to the clock
            after_id (int, optional): Ignore added cases with an id up to
                this one, as an earlier batch checked them. Revocations are
                always applied.

        Returns:
            :obj:`DisclosureReport`
        """
        if today is None:
            today = self._clock.today()

        report = DisclosureReport()
        known_cases = []

        for entry in entries:
            try:
                known_case = entry if isinstance(entry, KnownCase) else KnownCase.from_dict(entry)
            except MalformedDisclosure as exc:
                report.skipped += 1
                self._log.warning("malformed_disclosure", error=str(exc))
                continue
            known_cases.append(known_case)

        known_cases.sort(key=lambda known_case: known_case.id)

        for known_case in known_cases:
            if known_case.action is DisclosureAction.ADD:
                if after_id is not None and known_case.id <= after_id:
                    continue
                result = self.check_known_case(known_case, today)
                if result:
                    report.matches.append(result)
            else:
                report.revoked[known_case.id] = self.revoke_known_case(known_case.id, today)

            report.last_case_id = known_case.id

        return report
