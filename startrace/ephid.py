"""
Ephemeral identifiers broadcast during each epoch of a day
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

from startrace.crypto import generate_ephids_for_day
from startrace.epoch import Day, EpochClock


class EphemeralId:
    """An EphID together with the epoch during which it is broadcast"""

    __slots__ = ("epoch", "data")

    def __init__(self, epoch, data):
        self.epoch = epoch
        self.data = bytes(data)

    def __bytes__(self):
        return self.data

    def __eq__(self, other):
        if not isinstance(other, EphemeralId):
            return NotImplemented
        return self.epoch == other.epoch and self.data == other.data

    def __hash__(self):
        return hash((self.epoch, self.data))

    def __repr__(self):
        return "<EphemeralId {} at {!r}>".format(self.data.hex(), self.epoch)


class EphemeralIdGenerator:
    """Expands day keys into EphIDs and selects the one to broadcast now

    The EphIDs of the most recently requested day are cached, so calling
    :meth:`current_id` once per epoch only runs the stream cipher once a day.

    Args:
        chain (:obj:`startrace.keychain.SecretKeyChain`): The local key chain
        clock (:obj:`startrace.epoch.EpochClock`, optional): The wall clock
    """

    def __init__(self, chain, clock=None):
        self._chain = chain
        self._clock = clock or EpochClock()
        self._lock = threading.Lock()
        self._cached = None

    @staticmethod
    def derive_daily_ids(secret_key):
        """Return the EphIDs of secret_key's day in broadcast order

        Args:
            secret_key (:obj:`startrace.keychain.SecretKey`): A day key

        Returns:
            list of :obj:`EphemeralId`: One per epoch of the day
        """
        first_epoch = secret_key.day.first_epoch
        return [
            EphemeralId(first_epoch + slot, data)
            for slot, data in enumerate(generate_ephids_for_day(secret_key.key))
        ]

    def ids_for_key(self, secret_key):
        """Like :meth:`derive_daily_ids`, but served from the cache when possible"""
        with self._lock:
            if self._cached is not None and self._cached[0] == secret_key:
                return self._cached[1]

        ephids = self.derive_daily_ids(secret_key)
        with self._lock:
            self._cached = (secret_key, ephids)
        return ephids

    def current_id(self, now=None):
        """Return the EphID to broadcast at time now

        Args:
            now (:obj:`datetime.datetime` or number, optional): Defaults to
                the clock

        Returns:
            :obj:`EphemeralId`
        """
        if now is None:
            now = self._clock.now()

        day = Day.from_timestamp(now)
        if day is None:
            raise ValueError("Time is before EPOCH0")

        ephids = self.ids_for_key(self._chain.current_key(day))
        return ephids[day.slot(now)]

    def invalidate(self):
        """Drop cached EphIDs, e.g. after the key chain was reset"""
        with self._lock:
            self._cached = None
