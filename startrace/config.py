"""
Global protocol constants and runtime configuration.

The constants in the first half of this module are the wire contract of the
system: a broadcaster and a scanner only interoperate if they agree on every
one of them.
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
import os


##########################
### PROTOCOL CONSTANTS ###
##########################

#: For how many days we should store keys and observations
RETENTION_PERIOD = 21

#: The length of an epoch in minutes
EPOCH_LENGTH = 15

#: Number of epochs in a day
NUM_EPOCHS_PER_DAY = 1440 // EPOCH_LENGTH

#: Seconds in a single epoch
SECONDS_PER_EPOCH = EPOCH_LENGTH * 60

#: Seconds in a UNIX Epoch day
SECONDS_PER_DAY = 24 * 60 * 60

#: Origin of epoch counting (2020-03-29T00:00:00Z). Must be day aligned.
EPOCH0 = 1585440000

#: Length of a day key in bytes
LENGTH_KEY = 32

#: Length of EphID in bytes
LENGTH_EPHID = 16

#: Constant string "broadcast key" for domain seperation
BROADCAST_KEY = "broadcast key".encode("ascii")

#: Transmission power (dBm) assumed when the peer does not advertise one
DEFAULT_TX_POWER = 12.0


#############################
### RUNTIME CONFIGURATION ###
#############################

#: Environment variable holding the log level
LOG_LEVEL_ENV = "STARTRACE_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"

#: Number of log entries kept in memory in calibration mode
DEFAULT_LOG_BUFFER_SIZE = 1000


class TracingMode(enum.Enum):
    """Operating mode of a tracing context.

    Calibration mode keeps recent log entries in memory so that field tests
    can inspect them. Production mode only emits them.
    """

    PRODUCTION = "production"
    CALIBRATION = "calibration"


def log_level_name():
    """Return the configured log level name, e.g. ``"INFO"``"""
    return os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()


class TracingConfig:
    """Runtime options of a :obj:`startrace.tracing.TracingContext`"""

    def __init__(
        self,
        mode=TracingMode.PRODUCTION,
        retention_period=RETENTION_PERIOD,
        reset_key_after_release=False,
        log_buffer_size=DEFAULT_LOG_BUFFER_SIZE,
    ):
        """Create a configuration

        Args:
            mode (:obj:`TracingMode`, optional): Production or calibration.
            retention_period (int, optional): Days of keys and encounters to keep.
            reset_key_after_release (bool, optional): Whether to replace the
                secret key chain after it has been disclosed. Default: False.
            log_buffer_size (int, optional): Log entries kept in calibration mode.

        Raises:
            ValueError: If retention_period or log_buffer_size is not positive
        """
        if retention_period < 1:
            raise ValueError("Retention period must be at least one day")
        if log_buffer_size < 1:
            raise ValueError("Log buffer size must be positive")

        self.mode = TracingMode(mode)
        self.retention_period = retention_period
        self.reset_key_after_release = reset_key_after_release
        self.log_buffer_size = log_buffer_size

    @property
    def calibration(self):
        return self.mode is TracingMode.CALIBRATION

    def __repr__(self):
        return "TracingConfig(mode={}, retention_period={})".format(
            self.mode.value, self.retention_period
        )
