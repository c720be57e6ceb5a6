"""
Encounter records and the store they live in

The tracing core only needs a small append-and-query contract from the
persistence layer, described by :obj:`EncounterStore`. The in-memory
implementation serves tests and embedders without a database.
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

import abc
import itertools
import threading

from startrace.config import DEFAULT_TX_POWER
from startrace.errors import StorageAccessFailure


class SignalMetadata:
    """Radio measurements reported with an observation

    Args:
        rssi (float, optional): Received signal strength in dBm
        tx_power (float, optional): Advertised transmission power in dBm
    """

    __slots__ = ("rssi", "tx_power")

    def __init__(self, rssi=None, tx_power=None):
        self.rssi = rssi
        self.tx_power = tx_power

    @property
    def distance(self):
        """Rough distance estimate from the log-distance path loss model

        Returns None when no RSSI was measured.
        """
        if self.rssi is None:
            return None
        power = DEFAULT_TX_POWER if self.tx_power is None else self.tx_power
        return 10 ** ((power - self.rssi) / 20) / 1000

    def __repr__(self):
        return "SignalMetadata(rssi={}, tx_power={})".format(self.rssi, self.tx_power)


class EncounterRecord:
    """A single observation of another device's EphID (a "handshake")

    The only field that changes after creation is :attr:`matched_case_id`,
    which goes from None to the id of the first known case explaining the
    observation. Revoking that case sets it back to None.
    """

    __slots__ = ("identifier", "timestamp", "observed", "signal", "matched_case_id")

    def __init__(self, timestamp, observed, signal=None, matched_case_id=None, identifier=None):
        self.identifier = identifier
        self.timestamp = timestamp
        self.observed = bytes(observed)
        self.signal = signal
        self.matched_case_id = matched_case_id

    @property
    def matched(self):
        return self.matched_case_id is not None

    def mark_matched(self, case_id):
        if self.matched_case_id is not None and self.matched_case_id != case_id:
            raise ValueError(
                "Encounter {} already matched case {}".format(self.identifier, self.matched_case_id)
            )
        self.matched_case_id = case_id

    def clear_match(self):
        self.matched_case_id = None

    def __repr__(self):
        return "<EncounterRecord {} at {} matched={}>".format(
            self.identifier, self.timestamp, self.matched_case_id
        )


class RecordQuery:
    """A page request for :meth:`EncounterStore.records`

    Args:
        matched_only (bool, optional): Only records associated with a known
            case. Default: False
        descending (bool, optional): Newest records first. Default: True
        offset (int, optional): Number of records to skip. Default: 0
        limit (int, optional): Maximum page size. Default: 30

    Raises:
        ValueError: If limit is not positive or offset is negative
    """

    def __init__(self, matched_only=False, descending=True, offset=0, limit=30):
        if limit < 1:
            raise ValueError("Limit must be at least one")
        if offset < 0:
            raise ValueError("Offset must not be negative")

        self.matched_only = matched_only
        self.descending = descending
        self.offset = offset
        self.limit = limit

    def previous(self):
        """Return the query for the preceding page, or None on the first page"""
        if self.offset == 0:
            return None
        diff = self.offset - self.limit
        return RecordQuery(
            self.matched_only, self.descending, max(0, diff), self.limit + min(0, diff)
        )

    def next(self):
        return RecordQuery(self.matched_only, self.descending, self.offset + self.limit, self.limit)

    def __eq__(self, other):
        if not isinstance(other, RecordQuery):
            return NotImplemented
        return vars(self) == vars(other)

    def __repr__(self):
        return "RecordQuery(matched_only={}, descending={}, offset={}, limit={})".format(
            self.matched_only, self.descending, self.offset, self.limit
        )


class RecordPage:
    """One page of records, with the queries for the neighbouring pages"""

    def __init__(self, records, query):
        self.records = records
        self.offset = query.offset
        self.limit = query.limit
        self.previous = query.previous()
        # A short page is the last one
        self.next = query.next() if len(records) == query.limit else None


def select_records(records, query):
    """Apply query to an iterable of records and return a :obj:`RecordPage`"""
    if query.matched_only:
        records = [record for record in records if record.matched]
    records = sorted(
        records, key=lambda record: (record.timestamp, record.identifier), reverse=query.descending
    )
    return RecordPage(records[query.offset : query.offset + query.limit], query)


class EncounterStore(abc.ABC):
    """Contract between the tracing core and the encounter persistence layer

    Implementations raise :obj:`StorageAccessFailure` when unavailable.
    """

    @abc.abstractmethod
    def append(self, record):
        """Store record, assign its identifier and return it"""

    @abc.abstractmethod
    def records_on_day(self, day):
        """Return the records whose timestamp falls within day"""

    @abc.abstractmethod
    def records(self, query):
        """Return a :obj:`RecordPage` of records selected by a :obj:`RecordQuery`"""

    @abc.abstractmethod
    def mark_matched(self, record_id, case_id):
        """Associate the record with a known case"""

    @abc.abstractmethod
    def existing_match(self, observed):
        """Return the case id already matched to these EphID bytes, or None"""

    @abc.abstractmethod
    def clear_matches(self, case_id):
        """Dissociate every record from case_id. Returns how many changed"""

    @abc.abstractmethod
    def delete_before(self, day):
        """Delete records older than day. Returns how many were deleted"""

    @abc.abstractmethod
    def count(self):
        """Return the number of stored records"""

    @abc.abstractmethod
    def remove_all(self):
        """Delete every record"""


class InMemoryEncounterStore(EncounterStore):
    """Thread-safe list-backed encounter store

    Setting :attr:`available` to False makes every call raise
    :obj:`StorageAccessFailure`.
    """

    def __init__(self):
        self._records = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.available = True

    def _check_available(self):
        if not self.available:
            raise StorageAccessFailure("Encounter store is unavailable")

    def append(self, record):
        self._check_available()
        with self._lock:
            record.identifier = next(self._ids)
            self._records[record.identifier] = record
        return record

    def records_on_day(self, day):
        self._check_available()
        with self._lock:
            return [record for record in self._records.values() if day.contains(record.timestamp)]

    def records(self, query):
        self._check_available()
        with self._lock:
            return select_records(list(self._records.values()), query)

    def mark_matched(self, record_id, case_id):
        self._check_available()
        with self._lock:
            try:
                record = self._records[record_id]
            except KeyError:
                raise KeyError("Unknown encounter {}".format(record_id)) from None
            record.mark_matched(case_id)

    def existing_match(self, observed):
        self._check_available()
        with self._lock:
            for record in self._records.values():
                if record.observed == observed and record.matched:
                    return record.matched_case_id
        return None

    def clear_matches(self, case_id):
        self._check_available()
        cleared = 0
        with self._lock:
            for record in self._records.values():
                if record.matched_case_id == case_id:
                    record.clear_match()
                    cleared += 1
        return cleared

    def delete_before(self, day):
        self._check_available()
        with self._lock:
            old_ids = [
                record_id
                for record_id, record in self._records.items()
                if record.timestamp < day.timestamp
            ]
            for record_id in old_ids:
                del self._records[record_id]
        return len(old_ids)

    def count(self):
        self._check_available()
        with self._lock:
            return len(self._records)

    def remove_all(self):
        self._check_available()
        with self._lock:
            self._records.clear()
