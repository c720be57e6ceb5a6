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

import pytest

from startrace.errors import StorageAccessFailure
from startrace.store import (
    EncounterRecord,
    InMemoryEncounterStore,
    RecordQuery,
    SignalMetadata,
)

from conftest import START_DAY

EPHID1 = bytes.fromhex("66687aadf862bd776c8fc18b8e9f8e20")
EPHID2 = bytes.fromhex("b7b1d06cd81686669aeea51e9f4723b5")


def test_signal_distance():
    assert SignalMetadata().distance is None
    assert SignalMetadata(rssi=12.0).distance == pytest.approx(0.001)
    assert SignalMetadata(rssi=-8.0, tx_power=-8.0).distance == pytest.approx(0.001)
    assert SignalMetadata(rssi=-28.0).distance == pytest.approx(0.1)


def test_record_match_transition():
    record = EncounterRecord(START_DAY.timestamp, EPHID1)
    assert not record.matched

    record.mark_matched(3)
    assert record.matched_case_id == 3
    with pytest.raises(ValueError):
        record.mark_matched(4)

    record.clear_match()
    assert not record.matched


def test_records_on_day():
    store = InMemoryEncounterStore()
    first = store.append(EncounterRecord(START_DAY.timestamp + 10, EPHID1))
    store.append(EncounterRecord((START_DAY + 1).timestamp, EPHID2))

    assert store.records_on_day(START_DAY) == [first]
    assert len(store.records_on_day(START_DAY + 1)) == 1
    assert store.records_on_day(START_DAY + 2) == []


def test_existing_match():
    store = InMemoryEncounterStore()
    record = store.append(EncounterRecord(START_DAY.timestamp, EPHID1))
    assert store.existing_match(EPHID1) is None

    store.mark_matched(record.identifier, 5)
    assert store.existing_match(EPHID1) == 5
    assert store.existing_match(EPHID2) is None

    assert store.clear_matches(5) == 1
    assert store.existing_match(EPHID1) is None


def test_mark_unknown_record():
    with pytest.raises(KeyError):
        InMemoryEncounterStore().mark_matched(42, 1)


def test_delete_before():
    store = InMemoryEncounterStore()
    store.append(EncounterRecord(START_DAY.timestamp, EPHID1))
    store.append(EncounterRecord((START_DAY + 2).timestamp, EPHID2))

    assert store.delete_before(START_DAY + 1) == 1
    assert store.count() == 1
    assert store.records_on_day(START_DAY) == []


def test_unavailable():
    store = InMemoryEncounterStore()
    store.available = False
    with pytest.raises(StorageAccessFailure):
        store.append(EncounterRecord(START_DAY.timestamp, EPHID1))
    with pytest.raises(StorageAccessFailure):
        store.records_on_day(START_DAY)


def filled_store(count):
    store = InMemoryEncounterStore()
    for offset in range(count):
        store.append(EncounterRecord(START_DAY.timestamp + 60 * offset, bytes([offset]) * 16))
    return store


def test_records_descending_by_default():
    page = filled_store(5).records(RecordQuery(limit=2))
    assert [record.identifier for record in page.records] == [5, 4]
    assert page.previous is None
    assert page.next == RecordQuery(offset=2, limit=2)


def test_records_ascending():
    page = filled_store(5).records(RecordQuery(descending=False, limit=3))
    assert [record.identifier for record in page.records] == [1, 2, 3]


def test_records_last_page():
    store = filled_store(5)
    page = store.records(RecordQuery(offset=4, limit=2))
    assert [record.identifier for record in page.records] == [1]
    assert page.next is None
    assert page.previous == RecordQuery(offset=2, limit=2)


def test_records_previous_page_clipped():
    page = filled_store(5).records(RecordQuery(offset=1, limit=3))
    assert page.previous == RecordQuery(offset=0, limit=1)


def test_records_matched_only():
    store = filled_store(4)
    store.mark_matched(2, 7)
    store.mark_matched(4, 7)

    page = store.records(RecordQuery(matched_only=True))
    assert [record.identifier for record in page.records] == [4, 2]
    assert page.next is None


@pytest.mark.parametrize("kwargs", [{"limit": 0}, {"offset": -1}])
def test_invalid_query(kwargs):
    with pytest.raises(ValueError):
        RecordQuery(**kwargs)
