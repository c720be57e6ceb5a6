"""
Known cases received from the backend and the exposure report sent to it
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

import base64
import binascii
import datetime
import enum

from startrace.config import LENGTH_KEY
from startrace.epoch import Day
from startrace.errors import MalformedDisclosure


class DisclosureAction(enum.Enum):
    ADD = "ADD"
    REMOVE = "REMOVE"


def _parse_key(value):
    if isinstance(value, str):
        try:
            value = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MalformedDisclosure("Key is not valid base64") from exc
    if not isinstance(value, (bytes, bytearray)):
        raise MalformedDisclosure("Key must be base64 text or bytes")
    if len(value) != LENGTH_KEY:
        raise MalformedDisclosure(
            "Key must be {} bytes, got {}".format(LENGTH_KEY, len(value))
        )
    return bytes(value)


def _parse_onset(value):
    if isinstance(value, datetime.datetime):
        raise MalformedDisclosure("Onset must be a calendar date without time")
    if isinstance(value, datetime.date):
        return value
    if not isinstance(value, str):
        raise MalformedDisclosure("Onset must be an ISO date")
    try:
        return datetime.datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise MalformedDisclosure("Unparseable onset date {!r}".format(value)) from exc


class KnownCase:
    """The disclosed key of a diagnosed person

    Args:
        id (int): Backend identifier of the case
        key (byte array): The 32-byte key of the onset day
        onset (:obj:`datetime.date`): First day the key is valid for matching
        action (:obj:`DisclosureAction`, optional): Whether the case is added
            or revoked
    """

    def __init__(self, id, key, onset, action=DisclosureAction.ADD):
        self.id = id
        self.key = _parse_key(key)
        self.onset = _parse_onset(onset)
        self.action = DisclosureAction(action)

        #: The onset as a :obj:`startrace.epoch.Day`
        self.onset_day = Day.from_date(self.onset)
        if self.onset_day is None:
            raise MalformedDisclosure("Onset {} is before EPOCH0".format(self.onset))

    @classmethod
    def from_dict(cls, data):
        """Parse a disclosure record

        Expected shape: ``{"id": 1, "key": "<base64>", "onset": "2020-04-25",
        "action": "ADD"}``. The action defaults to ADD.

        Raises:
            MalformedDisclosure: If any field is missing or invalid
        """
        if not isinstance(data, dict):
            raise MalformedDisclosure("Disclosure must be an object")

        try:
            case_id = data["id"]
            key = data["key"]
            onset = data["onset"]
        except KeyError as exc:
            raise MalformedDisclosure("Missing field {}".format(exc)) from exc

        if isinstance(case_id, bool) or not isinstance(case_id, int):
            raise MalformedDisclosure("Case id must be an integer")

        try:
            action = DisclosureAction(data.get("action", DisclosureAction.ADD.value))
        except ValueError as exc:
            raise MalformedDisclosure("Unknown action {!r}".format(data.get("action"))) from exc

        return cls(case_id, key, onset, action)

    def __repr__(self):
        return "<KnownCase {} onset {} {}>".format(self.id, self.onset, self.action.value)


class ExposureReport:
    """Payload telling the backend that the local user is infected

    Args:
        key (byte array): The local key of the onset day
        onset (:obj:`datetime.date`): The onset date
        auth_data (str, optional): Opaque data from a health authority
    """

    def __init__(self, key, onset, auth_data=None):
        self.key = bytes(key)
        self.onset = onset
        self.auth_data = auth_data

    def to_dict(self):
        return {
            "key": base64.b64encode(self.key).decode("ascii"),
            "onset": self.onset.isoformat(),
            "authData": {"value": self.auth_data},
        }

    def __repr__(self):
        return "<ExposureReport onset {}>".format(self.onset)
