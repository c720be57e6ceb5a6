#!/usr/bin/env python3

""" Produces test vectors for the day key chain and EphID expansion """

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

from startrace.config import BROADCAST_KEY, NUM_EPOCHS_PER_DAY
from startrace.crypto import next_day_key, generate_ephids_for_day

KEY0 = bytes.fromhex("0000000000000000000000000000000000000000000000000000000000000000")


def main():
    print("## Test vectors of keys and generated EphIDs ##")
    print("   Broadcast label: {!r}".format(BROADCAST_KEY))
    print("   EphIDs are listed in broadcast order, slot j is epoch j of the day.\n")
    key = KEY0
    for i in range(3):
        print("  * Key: SK_[t + {}] = {}".format(i, key.hex()))
        print("         (base64)    {}".format(base64.b64encode(key).decode("ascii")))
        ephids = generate_ephids_for_day(key)
        for j in [0, 1, 2, NUM_EPOCHS_PER_DAY - 1]:
            print("    - ephid[{}] = {}".format(j, ephids[j].hex()))
        key = next_day_key(key)


if __name__ == "__main__":
    main()
