"""
Error taxonomy of the tracing core
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


class TracingError(Exception):
    """Base class of all errors raised by the tracing core"""


class KeyUnavailable(TracingError, ValueError):
    """A secret key was requested for a day outside the retained window"""


class RandomGenerationFailure(TracingError):
    """The secure random source could not produce a fresh key"""


class StorageAccessFailure(TracingError):
    """The secret key store or the encounter store is unreachable or corrupt"""


class MalformedDisclosure(TracingError, ValueError):
    """A disclosed known case could not be parsed"""


class ChainIntegrityError(TracingError):
    """The persisted secret key chain violates its invariants"""
