"""
Time quantization shared by every component: epochs and days
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

import datetime
import functools
import time as _time

from startrace.config import EPOCH0, SECONDS_PER_EPOCH, SECONDS_PER_DAY


#########################
### UTILITY FUNCTIONS ###
#########################


def seconds_from_time(time):
    """Return the UNIX time in seconds of time

    Args:
        time (:obj:`datetime.datetime` or number): A datetime, or seconds
            since the UNIX epoch

    Returns:
        The UNIX time as a number
    """
    if isinstance(time, datetime.datetime):
        return time.timestamp()
    return time


def epoch_for_timestamp(time):
    """Return the epoch containing time, or None if time is before EPOCH0"""
    return Epoch.from_timestamp(time)


def timestamp_for_epoch(index):
    """Return the first second of the epoch with the given index"""
    return EPOCH0 + index * SECONDS_PER_EPOCH


#######################
### TIME QUANTIZERS ###
#######################


@functools.total_ordering
class Epoch:
    """A fixed length time window, identified by its index since EPOCH0

    Epochs are ordered and compared on their index only. An :obj:`Epoch`
    never compares equal to a :obj:`Day`, even with the same index.
    """

    #: Duration in seconds
    LENGTH = SECONDS_PER_EPOCH

    __slots__ = ("index",)

    def __init__(self, index):
        if index < 0:
            raise ValueError("There is no {} before EPOCH0".format(type(self).__name__))
        self.index = int(index)

    @classmethod
    def from_timestamp(cls, time):
        """Return the window containing time

        Args:
            time (:obj:`datetime.datetime` or number): The requested time

        Returns:
            The window, or None if time is before EPOCH0
        """
        seconds = seconds_from_time(time)
        if seconds < EPOCH0:
            return None
        return cls(int((seconds - EPOCH0) // cls.LENGTH))

    @property
    def timestamp(self):
        """First second (UNIX time) of this window"""
        return EPOCH0 + self.index * self.LENGTH

    @property
    def end(self):
        """First second (UNIX time) after this window"""
        return self.timestamp + self.LENGTH

    @property
    def next(self):
        return type(self)(self.index + 1)

    @property
    def previous(self):
        if self.timestamp - self.LENGTH < EPOCH0:
            return None
        return type(self)(self.index - 1)

    def contains(self, time):
        """Whether time falls within this window"""
        return self.timestamp <= seconds_from_time(time) < self.end

    def __add__(self, count):
        return type(self)(self.index + count)

    def __sub__(self, other):
        # Window minus window is a distance, window minus int is a window
        if isinstance(other, Epoch):
            if type(other) is not type(self):
                return NotImplemented
            return self.index - other.index
        return type(self)(self.index - other)

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self.index == other.index

    def __lt__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self.index < other.index

    def __hash__(self):
        return hash((type(self).__name__, self.index))

    def __repr__(self):
        return "<{} index: {}>".format(type(self).__name__, self.index)


class Day(Epoch):
    """A UTC day, the validity period of a single secret key"""

    LENGTH = SECONDS_PER_DAY

    __slots__ = ()

    @classmethod
    def from_date(cls, date):
        """Return the day corresponding to a calendar date

        Args:
            date (:obj:`datetime.date`): A calendar date, interpreted in UTC

        Returns:
            The day, or None if date is before EPOCH0
        """
        start = datetime.datetime(date.year, date.month, date.day, tzinfo=datetime.timezone.utc)
        return cls.from_timestamp(start)

    @property
    def date(self):
        """The UTC calendar date of this day"""
        return datetime.datetime.fromtimestamp(self.timestamp, tz=datetime.timezone.utc).date()

    @property
    def first_epoch(self):
        return Epoch.from_timestamp(self.timestamp)

    def slot(self, time):
        """Return the index of the epoch containing time within this day

        Raises:
            ValueError: If time is not within this day
        """
        seconds = seconds_from_time(time)
        if not self.contains(seconds):
            raise ValueError("Time {} is not within {!r}".format(seconds, self))
        return int((seconds - self.timestamp) // SECONDS_PER_EPOCH)


class EpochClock:
    """Wall clock quantized into epochs and days

    Args:
        now (callable, optional): Returns the current time as a datetime or
            UNIX seconds. Defaults to the system clock. Tests pass a fixed
            value here.
    """

    def __init__(self, now=None):
        self._now = now or _time.time

    def now(self):
        """Current UNIX time in seconds"""
        return seconds_from_time(self._now())

    def current_epoch(self):
        return self._require(Epoch.from_timestamp(self.now()))

    def today(self):
        return self._require(Day.from_timestamp(self.now()))

    @staticmethod
    def _require(window):
        if window is None:
            raise ValueError("System clock is set before EPOCH0")
        return window
