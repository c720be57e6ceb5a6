"""
Rolling window of per-day secret keys

The window is a hash chain: the key of day t + 1 is SHA-256 of the key of
day t. Only the most recent RETENTION_PERIOD days are kept. Older keys are
discarded and cannot be recomputed.
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
import json
import os
import tempfile
import threading

from startrace.config import LENGTH_KEY, RETENTION_PERIOD
from startrace.crypto import generate_new_day_key, next_day_key
from startrace.epoch import Day, EpochClock
from startrace.errors import ChainIntegrityError, StorageAccessFailure
from startrace.log import get_logger


class SecretKey:
    """The secret key of a single day

    Args:
        day (:obj:`startrace.epoch.Day`): The day on which this key is used
        key (byte array): A 32-byte key
    """

    __slots__ = ("day", "key")

    def __init__(self, day, key):
        if len(key) != LENGTH_KEY:
            raise ValueError("Day keys must be {} bytes".format(LENGTH_KEY))
        self.day = day
        self.key = bytes(key)

    def to_dict(self):
        return {"day": self.day.index, "key": self.key.hex()}

    @classmethod
    def from_dict(cls, data):
        return cls(Day(data["day"]), bytes.fromhex(data["key"]))

    def __eq__(self, other):
        if not isinstance(other, SecretKey):
            return NotImplemented
        return self.day == other.day and self.key == other.key

    def __hash__(self):
        return hash((self.day, self.key))

    def __repr__(self):
        # Never show key material
        return "<SecretKey {!r}>".format(self.day)


###############
### STORAGE ###
###############


class SecretKeyStorage(abc.ABC):
    """Secure persistence of the key window

    Implementations raise :obj:`StorageAccessFailure` when the underlying
    store cannot be reached or holds corrupt data.
    """

    @abc.abstractmethod
    def get(self):
        """Return the stored keys, or an empty list if nothing is stored"""

    @abc.abstractmethod
    def set(self, keys):
        """Replace the stored keys. Either all keys are written or none"""

    @abc.abstractmethod
    def remove_all(self):
        """Delete the stored keys"""


class InMemorySecretKeyStorage(SecretKeyStorage):
    """Volatile key storage for tests and ephemeral contexts

    Setting :attr:`available` to False makes every call fail, which
    simulates a locked platform keychain.
    """

    def __init__(self, keys=None):
        self._keys = list(keys or [])
        self.available = True

    def _check_available(self):
        if not self.available:
            raise StorageAccessFailure("Secret key storage is unavailable")

    def get(self):
        self._check_available()
        return list(self._keys)

    def set(self, keys):
        self._check_available()
        self._keys = list(keys)

    def remove_all(self):
        self._check_available()
        self._keys = []


class FileSecretKeyStorage(SecretKeyStorage):
    """Key storage in a JSON file that is only readable by its owner

    Writes go to a temporary file in the same directory which then
    atomically replaces the previous file.

    Args:
        path (str): Location of the JSON file
    """

    def __init__(self, path):
        self.path = os.fspath(path)

    def get(self):
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                document = json.load(handle)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            raise StorageAccessFailure("Cannot read {}".format(self.path)) from exc

        try:
            return [SecretKey.from_dict(entry) for entry in document["keys"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageAccessFailure("Corrupt key file {}".format(self.path)) from exc

    def set(self, keys):
        document = {"keys": [key.to_dict() for key in keys]}
        directory = os.path.dirname(os.path.abspath(self.path))

        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".keys-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.chmod(tmp_path, 0o600)
                os.replace(tmp_path, self.path)
            except BaseException:
                os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise StorageAccessFailure("Cannot write {}".format(self.path)) from exc

    def remove_all(self):
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise StorageAccessFailure("Cannot remove {}".format(self.path)) from exc


#################
### KEY CHAIN ###
#################


def validate_chain(keys):
    """Check that keys form an uninterrupted hash chain over consecutive days

    Raises:
        ChainIntegrityError: If days are not consecutive or a key does not
            hash to its successor
    """
    for previous, current in zip(keys, keys[1:]):
        if current.day.index != previous.day.index + 1:
            raise ChainIntegrityError(
                "Gap between {!r} and {!r}".format(previous.day, current.day)
            )
        if next_day_key(previous.key) != current.key:
            raise ChainIntegrityError("Broken hash chain at {!r}".format(current.day))


class SecretKeyChain:
    """Owner of the local window of day keys

    All mutation happens under one lock, so concurrent callers never rotate
    the same window twice.

    Args:
        storage (:obj:`SecretKeyStorage`): Where the window is persisted
        clock (:obj:`startrace.epoch.EpochClock`, optional): Source of "today"
        retention_period (int, optional): Number of days to retain
    """

    def __init__(self, storage, clock=None, retention_period=RETENTION_PERIOD, log=None):
        if retention_period < 1:
            raise ValueError("Retention period must be at least one day")

        self._storage = storage
        self._clock = clock or EpochClock()
        self._lock = threading.RLock()
        self.retention_period = retention_period
        self._log = log or get_logger("keychain")

    def _load(self):
        keys = sorted(self._storage.get(), key=lambda secret_key: secret_key.day)
        validate_chain(keys)
        return keys

    def current_key(self, today=None):
        """Return today's key, rotating the chain forward if needed

        Each missing day is derived one hash step at a time, evicting keys
        beyond the retention period after every step. The updated window is
        persisted once, so a failure leaves the stored window untouched.

        Args:
            today (:obj:`startrace.epoch.Day`, optional): Defaults to the clock

        Returns:
            :obj:`SecretKey`: The key for today

        Raises:
            ChainIntegrityError: If the stored chain is newer than today and
                no longer holds a key for today
            RandomGenerationFailure: If seeding a new chain fails
            StorageAccessFailure: If the storage is unavailable
        """
        if today is None:
            today = self._clock.today()

        with self._lock:
            keys = self._load()
            changed = False

            if not keys:
                keys = [SecretKey(today, generate_new_day_key())]
                changed = True
                self._log.info("key_chain_seeded", day=today.index)

            if keys[-1].day > today:
                # Another caller already rotated past a day boundary
                for secret_key in keys:
                    if secret_key.day == today:
                        return secret_key
                raise ChainIntegrityError(
                    "No retained key for {!r}, newest key is {!r}".format(today, keys[-1].day)
                )

            rotations = 0
            while keys[-1].day < today:
                newest = keys[-1]
                keys.append(SecretKey(newest.day.next, next_day_key(newest.key)))
                del keys[: -self.retention_period]
                rotations += 1

            if len(keys) > self.retention_period:
                del keys[: -self.retention_period]
                changed = True

            if rotations:
                changed = True
                self._log.info("key_chain_rotated", rotations=rotations, day=today.index)

            if changed:
                self._storage.set(keys)

            return keys[-1]

    def keys(self, today=None):
        """Return a copy of the retained window, oldest key first"""
        with self._lock:
            self.current_key(today)
            return self._load()

    def key_for(self, day, today=None):
        """Return the retained key for day

        Args:
            day (:obj:`startrace.epoch.Day`): The requested day
            today (:obj:`startrace.epoch.Day`, optional): Defaults to the clock

        Returns:
            :obj:`SecretKey` or None: None if day is older than the oldest
            retained key or after today
        """
        if today is None:
            today = self._clock.today()
        if day > today:
            return None

        with self._lock:
            keys = self._load()
            if not keys or keys[-1].day < today:
                keys = self.keys(today)
            for secret_key in keys:
                if secret_key.day == day:
                    return secret_key
        return None

    def reset(self):
        """Discard the whole chain. The next access seeds a fresh random key"""
        with self._lock:
            self._storage.remove_all()
            self._log.info("key_chain_reset")
