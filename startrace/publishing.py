"""
Selecting the local key to disclose after a positive diagnosis
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

from startrace.cases import ExposureReport
from startrace.epoch import Day, EpochClock
from startrace.errors import KeyUnavailable


class PublishingKeyResolver:
    """Looks up the key of an onset date in the local chain

    Only the key of exactly the onset day is ever returned. A later key
    published with an earlier onset date would make every receiver derive
    the wrong EphIDs for every day, so an onset before the oldest retained
    key is refused rather than approximated.

    Args:
        chain (:obj:`startrace.keychain.SecretKeyChain`): The local key chain
        clock (:obj:`startrace.epoch.EpochClock`, optional): The wall clock
    """

    def __init__(self, chain, clock=None):
        self._chain = chain
        self._clock = clock or EpochClock()

    def key_for_publishing(self, onset_date, today=None):
        """Return the key to disclose for onset_date

        Args:
            onset_date (:obj:`datetime.date`): The first contagious day
            today (:obj:`startrace.epoch.Day`, optional): Defaults to the clock

        Returns:
            byte array: The 32-byte key of the onset day

        Raises:
            KeyUnavailable: If the onset is in the future, or its key was
                already evicted from the retained window
        """
        if today is None:
            today = self._clock.today()

        onset_day = Day.from_date(onset_date)
        if onset_day is None:
            raise KeyUnavailable("Onset {} is before EPOCH0".format(onset_date))
        if onset_day > today:
            raise KeyUnavailable("Onset {} is in the future".format(onset_date))

        secret_key = self._chain.key_for(onset_day, today)
        if secret_key is None:
            raise KeyUnavailable("The key for {} is no longer retained".format(onset_date))
        return secret_key.key

    def exposure_report(self, onset_date, auth_data=None, today=None):
        """Build the payload disclosing the key of onset_date

        Raises:
            KeyUnavailable: See :meth:`key_for_publishing`
        """
        key = self.key_for_publishing(onset_date, today)
        return ExposureReport(key, onset_date, auth_data)
