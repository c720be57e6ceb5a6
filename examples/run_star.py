#!/usr/bin/env python3

""" Simple example/demo of the tracing core

This demo simulates some interactions between two phones, represented by
tracing contexts with a simulated clock, and then runs retroactive matching.
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
from datetime import datetime, timedelta, timezone

from startrace.config import SECONDS_PER_DAY
from startrace.epoch import EpochClock
from startrace.log import configure_logging
from startrace.tracing import InfectionStatus, TracingContext


class SimulatedTime:
    """A clock that only moves when told to"""

    def __init__(self, start):
        self.time = start.timestamp()

    def __call__(self):
        return self.time

    def advance(self, **kwargs):
        self.time += timedelta(**kwargs).total_seconds()


def report_broadcasted_ephids(name, app):
    """
    Convenience function to report some broadcasted EphIDs
    """
    ephid = app.current_ephid()
    print("{} broadcasts {} ...".format(name, ephid.hex()))


def report_day(time):
    """
    Convenience function to report start of the day
    """
    print("---- {} ----".format(datetime.fromtimestamp(time, tz=timezone.utc).date()))


def process_single_day(now, alice, bob, interact=False):
    """
    Convenience function, process and report on a single day
    """
    report_day(now())
    report_broadcasted_ephids("Alice", alice)
    report_broadcasted_ephids("Bob", bob)

    if interact:
        now.advance(hours=10)
        print("Alice and Bob interact:")
        ephid_bob = bob.current_ephid()
        alice.did_discover(ephid_bob, rssi=-60)
        print("  Alice observes Bob's EphID {}".format(ephid_bob.hex()))

        ephid_alice = alice.current_ephid()
        bob.did_discover(ephid_alice, rssi=-58)
        print("  Bob observes Alice's EphID {}".format(ephid_alice.hex()))
        now.advance(hours=-10)
    else:
        print("Alice and Bob do not interact")

    # Advance to the next day
    now.advance(days=1)
    print("")


def main():
    configure_logging()

    start = datetime.now(tz=timezone.utc)
    start = start - timedelta(seconds=start.timestamp() % SECONDS_PER_DAY)
    now = SimulatedTime(start)
    clock = EpochClock(now)

    alice = TracingContext(clock=clock)
    bob = TracingContext(clock=clock)
    alice.start_tracing()
    bob.start_tracing()

    ### Interaction ###

    process_single_day(now, alice, bob)
    process_single_day(now, alice, bob)
    process_single_day(now, alice, bob, interact=True)

    print("... skipping 3 days ...\n")
    now.advance(days=4)

    ### Diagnosis and reporting ###

    report_day(now())
    print("Bob is diagnosed with SARS-CoV-2")
    bob_onset = (datetime.fromtimestamp(now(), tz=timezone.utc) - timedelta(days=7)).date()
    print("Doctor establishes that Bob started being contagious on {}".format(bob_onset))

    print("\n[Bob -> Server] Bob sends:")
    exposure_report = bob.report_infected(bob_onset, auth_data="demo")
    print(" * his key on {}: {}".format(bob_onset, exposure_report.key.hex()))
    bob.confirm_report(exposure_report)
    print("  * The server accepts, Bob's status is {}".format(bob.status().infection_status.value))

    ### Contact tracing ###

    print("\n[Server -> Alice] Alice receives the published key")
    disclosure = {
        "id": 1,
        "key": base64.b64encode(exposure_report.key).decode("ascii"),
        "onset": bob_onset.isoformat(),
    }
    report = alice.sync([disclosure])

    print("  * Alice checks if she was in contact with an infected person")
    if alice.status().infection_status is InfectionStatus.EXPOSED and report.exposed:
        print("  * CORRECT: Alice's phone concludes she is at risk")
    else:
        print("  * ERROR: Alice's phone does not conclude she is at risk")
        raise RuntimeError("Example code failed!")

    print("\n[Alice] Runs housekeeping to prune her observation store")
    alice.housekeeping()


if __name__ == "__main__":
    main()
