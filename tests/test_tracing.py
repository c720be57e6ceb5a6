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

import startrace.config as config
from startrace.config import TracingConfig, TracingMode
from startrace.errors import KeyUnavailable
from startrace.store import RecordQuery
from startrace.tracing import InfectionStatus, TrackingState, TracingContext

from conftest import START_DAY


@pytest.fixture
def alice(clock):
    return TracingContext(clock=clock)


@pytest.fixture
def bob(clock):
    return TracingContext(clock=clock)


def disclosure(report, case_id=1):
    payload = report.to_dict()
    return {"id": case_id, "key": payload["key"], "onset": payload["onset"]}


def test_single_observation_exposes(alice, bob, now):
    alice.did_discover(bob.current_ephid(), rssi=-60)
    assert alice.status().number_of_handshakes == 1

    now.advance(days=2)
    report = bob.report_infected(START_DAY.date)
    bob.confirm_report(report)
    assert bob.status().infection_status is InfectionStatus.INFECTED

    sync_report = alice.sync([disclosure(report)])
    assert sync_report.exposed

    state = alice.status()
    assert state.infection_status is InfectionStatus.EXPOSED
    assert state.last_sync == now()


def test_contact_before_onset(alice, bob, now):
    alice.did_discover(bob.current_ephid())

    now.advance(days=2)
    report = bob.report_infected((START_DAY + 1).date)
    alice.sync([disclosure(report)])
    assert alice.status().infection_status is InfectionStatus.HEALTHY


def test_sync_skips_processed_cases(alice, bob, now):
    alice.did_discover(bob.current_ephid())
    now.advance(days=1)
    entries = [disclosure(bob.report_infected(START_DAY.date), case_id=5)]

    assert alice.sync(entries).exposed
    assert not alice.sync(entries).matches


def test_revocation_keeps_status(alice, bob, now):
    alice.did_discover(bob.current_ephid())
    now.advance(days=1)
    entry = disclosure(bob.report_infected(START_DAY.date))
    alice.sync([entry])

    report = alice.sync([dict(entry, action="REMOVE")])
    assert report.revoked == {1: 1}
    assert alice.status().infection_status is InfectionStatus.EXPOSED


def test_rediscovery_of_matched_ephid(alice, bob, now):
    ephid = bob.current_ephid()
    alice.did_discover(ephid)
    now.advance(days=1)
    alice.sync([disclosure(bob.report_infected(START_DAY.date))])

    now.advance(days=-1, minutes=2)
    record = alice.did_discover(ephid)
    assert record.matched_case_id == 1
    assert alice.status().infection_status is InfectionStatus.EXPOSED


def test_infected_not_downgraded_to_exposed(alice, bob, now):
    alice.current_ephid()
    alice.did_discover(bob.current_ephid())
    now.advance(days=1)
    alice.confirm_report(alice.report_infected(START_DAY.date))
    alice.sync([disclosure(bob.report_infected(START_DAY.date))])
    assert alice.status().infection_status is InfectionStatus.INFECTED


def test_report_not_infected(bob, now):
    bob.current_ephid()
    now.advance(days=1)
    bob.confirm_report(bob.report_infected(START_DAY.date))

    report = bob.report_not_infected(auth_data="token")
    assert report.onset == (START_DAY + 1).date
    assert report.key == bob.chain.current_key().key
    assert bob.status().infection_status is InfectionStatus.INFECTED

    bob.confirm_report(report)
    assert bob.status().infection_status is InfectionStatus.HEALTHY


def test_unconfirmed_report_keeps_status(bob):
    bob.current_ephid()
    bob.report_infected(START_DAY.date)
    assert bob.status().infection_status is InfectionStatus.HEALTHY


def test_confirm_only_latest_report(bob):
    bob.current_ephid()
    first = bob.report_infected(START_DAY.date)
    latest = bob.report_infected(START_DAY.date)

    with pytest.raises(ValueError):
        bob.confirm_report(first)
    bob.confirm_report(latest)
    with pytest.raises(ValueError):
        bob.confirm_report(latest)
    assert bob.status().infection_status is InfectionStatus.INFECTED


def test_report_unavailable_onset(bob):
    bob.current_ephid()
    with pytest.raises(KeyUnavailable):
        bob.report_infected((START_DAY - 1).date)
    assert bob.status().infection_status is InfectionStatus.HEALTHY


def test_reset_key_after_release(clock):
    context = TracingContext(TracingConfig(reset_key_after_release=True), clock=clock)
    before = context.current_ephid()
    key = context.chain.current_key().key

    report = context.report_infected(START_DAY.date)
    assert report.key == key
    assert context.current_ephid() == before

    context.confirm_report(report)
    assert context.current_ephid() != before
    assert context.chain.current_key().key != key


def test_key_kept_after_release(bob):
    before = bob.current_ephid()
    bob.confirm_report(bob.report_infected(START_DAY.date))
    assert bob.current_ephid() == before


def test_housekeeping(alice, bob, now):
    alice.did_discover(bob.current_ephid())

    now.advance(days=config.RETENTION_PERIOD)
    assert alice.housekeeping() == 0
    assert alice.status().number_of_handshakes == 1

    now.advance(days=1)
    assert alice.housekeeping() == 1
    assert alice.status().number_of_handshakes == 0


def test_reset(alice, bob, now):
    ephid = alice.current_ephid()
    alice.did_discover(bob.current_ephid())
    now.advance(days=1)
    alice.sync([disclosure(bob.report_infected(START_DAY.date))])

    alice.reset()
    state = alice.status()
    assert state.number_of_handshakes == 0
    assert state.infection_status is InfectionStatus.HEALTHY
    assert state.last_sync is None

    now.advance(days=-1)
    assert alice.current_ephid() != ephid


def test_calibration_logs(clock):
    context = TracingContext(TracingConfig(mode=TracingMode.CALIBRATION), clock=clock)
    context.current_ephid()
    context.did_discover(bytes(16))

    entries = context.get_logs()
    assert entries
    assert "key_chain_seeded" in [entry.event for entry in entries]
    assert {entry.component for entry in entries} >= {"keychain"}
    assert all(entry.level == "info" for entry in context.get_logs(level="info"))


def test_production_logs_empty(alice):
    alice.current_ephid()
    assert alice.get_logs() == []


def test_tracking_state(alice):
    assert alice.status().tracking_state is TrackingState.STOPPED

    alice.start_tracing()
    assert alice.status().tracking_state is TrackingState.ACTIVE

    alice.tracking_failed("bluetooth turned off")
    state = alice.status()
    assert state.tracking_state is TrackingState.INACTIVE
    assert state.tracking_error == "bluetooth turned off"

    alice.start_tracing()
    state = alice.status()
    assert state.tracking_state is TrackingState.ACTIVE
    assert state.tracking_error is None

    alice.stop_tracing()
    assert alice.status().tracking_state is TrackingState.STOPPED


def test_reset_stops_tracking(alice):
    alice.start_tracing()
    alice.reset()
    assert alice.status().tracking_state is TrackingState.STOPPED


def test_records_listing(alice, bob, now):
    first = alice.did_discover(bob.current_ephid())
    now.advance(minutes=20)
    second = alice.did_discover(bob.current_ephid())
    now.advance(days=1)
    alice.sync([disclosure(bob.report_infected(START_DAY.date))])

    page = alice.records()
    assert [record.identifier for record in page.records] == [
        second.identifier,
        first.identifier,
    ]
    assert page.next is None

    matched = alice.records(RecordQuery(matched_only=True, descending=False))
    assert [record.identifier for record in matched.records] == [first.identifier]
