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
from datetime import date, datetime
import pytest

from startrace.cases import DisclosureAction, ExposureReport, KnownCase
from startrace.errors import MalformedDisclosure

from conftest import START_DAY

KEY = bytes(range(32))
KEY_B64 = base64.b64encode(KEY).decode("ascii")


def test_from_dict():
    known_case = KnownCase.from_dict({"id": 7, "key": KEY_B64, "onset": "2020-04-25"})
    assert known_case.id == 7
    assert known_case.key == KEY
    assert known_case.onset == date(2020, 4, 25)
    assert known_case.onset_day == START_DAY
    assert known_case.action is DisclosureAction.ADD


def test_from_dict_remove():
    known_case = KnownCase.from_dict(
        {"id": 7, "key": KEY_B64, "onset": "2020-04-25", "action": "REMOVE"}
    )
    assert known_case.action is DisclosureAction.REMOVE


def test_raw_key_bytes():
    assert KnownCase(1, KEY, date(2020, 4, 25)).key == KEY


@pytest.mark.parametrize(
    "entry",
    [
        {"id": 1, "key": "not base64!", "onset": "2020-04-25"},
        {"id": 1, "key": base64.b64encode(bytes(16)).decode("ascii"), "onset": "2020-04-25"},
        {"id": 1, "key": KEY_B64, "onset": "25.04.2020"},
        {"id": 1, "key": KEY_B64, "onset": "2020-04-25T10:00:00"},
        {"id": 1, "key": KEY_B64, "onset": "2019-01-01"},
        {"id": "1", "key": KEY_B64, "onset": "2020-04-25"},
        {"id": 1, "key": KEY_B64, "onset": "2020-04-25", "action": "UPDATE"},
        {"key": KEY_B64, "onset": "2020-04-25"},
        {"id": 1, "key": 12, "onset": "2020-04-25"},
        ["not", "a", "dict"],
    ],
)
def test_malformed(entry):
    with pytest.raises(MalformedDisclosure):
        KnownCase.from_dict(entry)


def test_onset_with_time_rejected():
    with pytest.raises(MalformedDisclosure):
        KnownCase(1, KEY, datetime(2020, 4, 25, 10, 0))


def test_malformed_is_value_error():
    with pytest.raises(ValueError):
        KnownCase.from_dict({"id": 1})


def test_exposure_report():
    report = ExposureReport(KEY, date(2020, 4, 25), auth_data="abc")
    assert report.to_dict() == {
        "key": KEY_B64,
        "onset": "2020-04-25",
        "authData": {"value": "abc"},
    }
