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

from datetime import datetime, timedelta, timezone
import pytest

from startrace.epoch import Day, EpochClock

START_TIME = datetime(2020, 4, 25, 15, 17, tzinfo=timezone.utc)
START_DAY = Day(27)


class MutableTime:
    """Callable returning a time that tests can move around"""

    def __init__(self, start=START_TIME):
        self.time = start.timestamp()

    def __call__(self):
        return self.time

    def advance(self, **kwargs):
        self.time += timedelta(**kwargs).total_seconds()


@pytest.fixture
def now():
    return MutableTime()


@pytest.fixture
def clock(now):
    return EpochClock(now)
