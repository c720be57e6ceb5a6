"""
Tying the components together for an app embedding the tracing core

A :obj:`TracingContext` is created once by the embedding application and
handed to whatever needs it: the Bluetooth layer asks it for the EphID to
broadcast and reports observations to it, the synchronization layer feeds
it disclosed keys. Every operation returns what happened, so the embedder
decides how to notify its observers.
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

import enum
import threading

from startrace.cases import ExposureReport
from startrace.config import TracingConfig
from startrace.epoch import EpochClock
from startrace.ephid import EphemeralIdGenerator
from startrace.keychain import InMemorySecretKeyStorage, SecretKeyChain
from startrace.log import LogBuffer, get_logger
from startrace.matching import ExposureMatcher
from startrace.publishing import PublishingKeyResolver
from startrace.store import InMemoryEncounterStore, RecordQuery, SignalMetadata


class InfectionStatus(enum.Enum):
    HEALTHY = "healthy"
    EXPOSED = "exposed"
    INFECTED = "infected"


class TrackingState(enum.Enum):
    """Whether the embedder is broadcasting and scanning"""

    ACTIVE = "active"
    STOPPED = "stopped"
    INACTIVE = "inactive"


class TracingState:
    """Snapshot of a context's state, see :meth:`TracingContext.status`"""

    def __init__(
        self,
        number_of_handshakes,
        infection_status,
        last_sync,
        tracking_state=TrackingState.STOPPED,
        tracking_error=None,
    ):
        self.number_of_handshakes = number_of_handshakes
        self.infection_status = infection_status
        self.last_sync = last_sync
        self.tracking_state = tracking_state
        # Set when tracking_state is INACTIVE
        self.tracking_error = tracking_error

    def __repr__(self):
        return "<TracingState handshakes={} status={} tracking={} last_sync={}>".format(
            self.number_of_handshakes,
            self.infection_status.value,
            self.tracking_state.value,
            self.last_sync,
        )


class TracingContext:
    """Handle on one instance of the tracing core

    Args:
        config (:obj:`startrace.config.TracingConfig`, optional): Runtime options
        key_storage (:obj:`startrace.keychain.SecretKeyStorage`, optional):
            Where day keys are kept. Defaults to memory.
        encounter_store (:obj:`startrace.store.EncounterStore`, optional):
            Where observations are kept. Defaults to memory.
        clock (:obj:`startrace.epoch.EpochClock`, optional): The wall clock
    """

    def __init__(self, config=None, key_storage=None, encounter_store=None, clock=None):
        self.config = config or TracingConfig()
        self.clock = clock or EpochClock()

        self.log_buffer = None
        if self.config.calibration:
            self.log_buffer = LogBuffer(self.config.log_buffer_size)
        self._log = get_logger("tracing", self.log_buffer)

        if key_storage is None:
            key_storage = InMemorySecretKeyStorage()
        if encounter_store is None:
            encounter_store = InMemoryEncounterStore()

        self.chain = SecretKeyChain(
            key_storage,
            self.clock,
            self.config.retention_period,
            log=get_logger("keychain", self.log_buffer),
        )
        self.generator = EphemeralIdGenerator(self.chain, self.clock)
        self.store = encounter_store
        self.matcher = ExposureMatcher(
            self.store, self.clock, log=get_logger("matcher", self.log_buffer)
        )
        self.resolver = PublishingKeyResolver(self.chain, self.clock)

        self._lock = threading.Lock()
        self._infection_status = InfectionStatus.HEALTHY
        self._last_sync = None
        self._last_case_id = None
        self._tracking_state = TrackingState.STOPPED
        self._tracking_error = None
        self._pending_report = None

    def _set_status(self, status):
        with self._lock:
            previous = self._infection_status
            self._infection_status = status
        if previous is not status:
            self._log.info("status_changed", previous=previous.value, status=status.value)

    def _mark_exposed(self):
        # A user who reported an infection stays infected
        with self._lock:
            if self._infection_status is not InfectionStatus.HEALTHY:
                return
            self._infection_status = InfectionStatus.EXPOSED
        self._log.info("status_changed", previous="healthy", status="exposed")

    ####################
    ### BROADCASTING ###
    ####################

    def current_ephid(self, now=None):
        """Return the raw EphID bytes to broadcast at time now"""
        return bytes(self.generator.current_id(now))

    ###################
    ### OBSERVATION ###
    ###################

    def did_discover(self, observed, rssi=None, tx_power=None, now=None):
        """Record the EphID of a nearby device

        Args:
            observed (byte array): The received EphID
            rssi (float, optional): Received signal strength
            tx_power (float, optional): Advertised transmission power
            now (:obj:`datetime.datetime` or number, optional): Observation time

        Returns:
            :obj:`startrace.store.EncounterRecord`
        """
        record = self.matcher.record_encounter(observed, SignalMetadata(rssi, tx_power), now)
        if record.matched:
            self._mark_exposed()
        return record

    def housekeeping(self, today=None):
        """Delete observations older than the retention period

        Returns:
            int: The number of deleted observations
        """
        if today is None:
            today = self.clock.today()
        if today.index < self.config.retention_period:
            return 0
        deleted = self.store.delete_before(today - self.config.retention_period)
        self._log.info("encounters_pruned", deleted=deleted)
        return deleted

    #######################
    ### SYNCHRONIZATION ###
    #######################

    def sync(self, entries, today=None):
        """Process disclosures fetched by the synchronization layer

        Cases with an id at or below the highest id of a previous sync are
        ignored.

        Args:
            entries (iterable): Disclosure dicts, see
                :meth:`startrace.cases.KnownCase.from_dict`
            today (:obj:`startrace.epoch.Day`, optional): Defaults to the clock

        Returns:
            :obj:`startrace.matching.DisclosureReport`
        """
        report = self.matcher.process_disclosures(entries, today, after_id=self._last_case_id)

        with self._lock:
            if report.last_case_id is not None:
                self._last_case_id = max(self._last_case_id or 0, report.last_case_id)
            self._last_sync = self.clock.now()

        if report.exposed:
            self._mark_exposed()

        self._log.info(
            "sync_completed",
            matches=len(report.matches),
            revoked=len(report.revoked),
            skipped=report.skipped,
        )
        return report

    #################
    ### REPORTING ###
    #################

    def report_infected(self, onset_date, auth_data=None):
        """Produce the payload disclosing our key since onset_date

        The status only changes once the embedder has uploaded the payload
        and calls :meth:`confirm_report`.

        Raises:
            KeyUnavailable: If the key of onset_date is not retained
        """
        report = self.resolver.exposure_report(onset_date, auth_data)
        with self._lock:
            self._pending_report = (report, InfectionStatus.INFECTED)
        return report

    def report_not_infected(self, auth_data=None):
        """Produce the payload withdrawing an earlier infection report

        Like :meth:`report_infected`, takes effect on :meth:`confirm_report`.
        """
        today = self.clock.today()
        secret_key = self.chain.current_key(today)
        report = ExposureReport(secret_key.key, today.date, auth_data)
        with self._lock:
            self._pending_report = (report, InfectionStatus.HEALTHY)
        return report

    def confirm_report(self, report):
        """Apply a report after the backend accepted it

        Args:
            report (:obj:`startrace.cases.ExposureReport`): The payload
                returned by the latest :meth:`report_infected` or
                :meth:`report_not_infected` call

        Raises:
            ValueError: If report is not the latest pending payload
        """
        with self._lock:
            if self._pending_report is None or self._pending_report[0] is not report:
                raise ValueError("Report is not pending confirmation")
            _, status = self._pending_report
            self._pending_report = None

        self._set_status(status)

        if status is InfectionStatus.INFECTED and self.config.reset_key_after_release:
            # Future EphIDs must not be linkable to the released key
            self.chain.reset()
            self.generator.invalidate()

    ################
    ### TRACKING ###
    ################

    def start_tracing(self):
        """Record that the embedder started broadcasting and scanning"""
        self._set_tracking(TrackingState.ACTIVE)

    def stop_tracing(self):
        self._set_tracking(TrackingState.STOPPED)

    def tracking_failed(self, error):
        """Record that tracking stopped on its own, e.g. Bluetooth turned off

        Args:
            error: What went wrong, reported back in :meth:`status`
        """
        self._set_tracking(TrackingState.INACTIVE, error)

    def _set_tracking(self, state, error=None):
        with self._lock:
            previous = self._tracking_state
            self._tracking_state = state
            self._tracking_error = error
        if previous is not state:
            self._log.info(
                "tracking_changed",
                previous=previous.value,
                state=state.value,
                error=None if error is None else str(error),
            )

    ##############
    ### STATUS ###
    ##############

    def status(self):
        """Return a :obj:`TracingState` snapshot"""
        number_of_handshakes = self.store.count()
        with self._lock:
            return TracingState(
                number_of_handshakes,
                self._infection_status,
                self._last_sync,
                self._tracking_state,
                self._tracking_error,
            )

    def records(self, query=None):
        """Return a page of stored encounters, newest first by default

        Args:
            query (:obj:`startrace.store.RecordQuery`, optional): Filter,
                order and page bounds

        Returns:
            :obj:`startrace.store.RecordPage`
        """
        return self.store.records(query or RecordQuery())

    def get_logs(self, since=None, level=None):
        """Return captured log entries. Always empty outside calibration mode"""
        if self.log_buffer is None:
            return []
        return self.log_buffer.entries(since=since, level=level)

    def reset(self):
        """Forget all keys, observations and state. Tracking is stopped"""
        self.chain.reset()
        self.generator.invalidate()
        self.store.remove_all()
        self.matcher.forget()
        with self._lock:
            self._infection_status = InfectionStatus.HEALTHY
            self._last_sync = None
            self._last_case_id = None
            self._tracking_state = TrackingState.STOPPED
            self._tracking_error = None
            self._pending_report = None
        self._log.info("context_reset")
