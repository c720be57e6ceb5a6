"""
Basic cryptographic functionality: the day key hash chain and EphID expansion
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

import hashlib
import hmac
import secrets

from Cryptodome.Util import Counter
from Cryptodome.Cipher import AES

from startrace.config import BROADCAST_KEY, LENGTH_EPHID, LENGTH_KEY, NUM_EPOCHS_PER_DAY
from startrace.errors import RandomGenerationFailure


def _check_key(key):
    if not isinstance(key, (bytes, bytearray)) or len(key) != LENGTH_KEY:
        raise ValueError("Day keys must be {} bytes".format(LENGTH_KEY))


def generate_new_day_key():
    """Returns a fresh random key

    Raises:
        RandomGenerationFailure: If the operating system's secure random
            source is unavailable
    """
    try:
        return secrets.token_bytes(LENGTH_KEY)
    except (OSError, NotImplementedError) as exc:
        raise RandomGenerationFailure("Secure random source failed") from exc


def next_day_key(current_day_key):
    """Computes key of the next day given current key

    Args:
        key (byte array): A 32-byte key

    Returns:
        byte array: The next 32-byte key
    """
    _check_key(current_day_key)
    return hashlib.sha256(current_day_key).digest()


def rotate_day_key(key, steps):
    """Apply :func:`next_day_key` steps times

    Args:
        key (byte array): A 32-byte key
        steps (int): Number of days to advance, at least 0

    Returns:
        byte array: The key steps days after key
    """
    if steps < 0:
        raise ValueError("Day keys can only be rotated forward")
    for _ in range(steps):
        key = next_day_key(key)
    return key


def generate_ephids_for_day(current_day_key):
    """Generates the list of EphIDs for the current day

    The list is in broadcast order: entry j is the EphID for epoch-slot j
    of the day.

    Args:
        key (byte array): A 32-byte key

    Returns:
        list of byte arrays: The NUM_EPOCHS_PER_DAY EphIDs for the day
    """
    _check_key(current_day_key)

    # Compute key for stream cipher based on current_day_key
    stream_key = hmac.new(bytes(current_day_key), BROADCAST_KEY, hashlib.sha256).digest()

    # Start with a fresh counter each day and initialize AES in CTR mode
    counter = Counter.new(128, initial_value=0)
    prg = AES.new(stream_key, AES.MODE_CTR, counter=counter)

    # Create the number of desired ephIDs by drawing from AES in CTR mode
    # operating as a stream cipher. To get the raw output, we ask the library
    # to "encrypt" an all-zero message of sufficient length.
    prg_output_bytes = prg.encrypt(bytes(LENGTH_EPHID * NUM_EPOCHS_PER_DAY))

    return [
        prg_output_bytes[idx : idx + LENGTH_EPHID]
        for idx in range(0, len(prg_output_bytes), LENGTH_EPHID)
    ]
