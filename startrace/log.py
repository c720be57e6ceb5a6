"""
Structured logging with structlog

Usage:
    # Once, at application startup
    from startrace.log import configure_logging

    configure_logging()                 # console output
    configure_logging(renderer="json")  # JSON lines

    # In components
    log = get_logger("keychain")
    log.info("key_rotated", day=day.index)

Secret key material is never passed to a logger.
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

import collections
import logging
import threading
import time

import structlog

from startrace.config import DEFAULT_LOG_BUFFER_SIZE, log_level_name


def _log_level():
    return getattr(logging, log_level_name(), logging.INFO)


def configure_logging(renderer="console"):
    """Configure structlog for the embedding application

    Args:
        renderer (str, optional): "console" for human readable output,
            "json" for one JSON object per line. Default: "console"
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if renderer == "json":
        final_processor = structlog.processors.JSONRenderer()
    elif renderer == "console":
        final_processor = structlog.dev.ConsoleRenderer(colors=False)
    else:
        raise ValueError("Unknown renderer {!r}".format(renderer))

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(_log_level()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


class LogEntry:
    """A captured log event"""

    def __init__(self, timestamp, level, component, event, fields):
        self.timestamp = timestamp
        self.level = level
        self.component = component
        self.event = event
        self.fields = fields

    def __repr__(self):
        return "<LogEntry {} {}: {}>".format(self.level, self.component, self.event)


class LogBuffer:
    """structlog processor keeping the most recent log events in memory

    Used in calibration mode, where field testers inspect what the tracing
    core did without access to the device's log output.
    """

    def __init__(self, size=DEFAULT_LOG_BUFFER_SIZE):
        self._entries = collections.deque(maxlen=size)
        self._lock = threading.Lock()

    def __call__(self, logger, method_name, event_dict):
        fields = dict(event_dict)
        event = fields.pop("event", None)
        component = fields.pop("component", None)
        entry = LogEntry(time.time(), method_name, component, event, fields)
        with self._lock:
            self._entries.append(entry)
        return event_dict

    def entries(self, since=None, level=None):
        """Return captured entries, oldest first

        Args:
            since (float, optional): Only entries at or after this UNIX time
            level (str, optional): Only entries of this level, e.g. "warning"
        """
        with self._lock:
            entries = list(self._entries)
        if since is not None:
            entries = [entry for entry in entries if entry.timestamp >= since]
        if level is not None:
            entries = [entry for entry in entries if entry.level == level]
        return entries

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)


class _BufferedLogger:
    """Logger feeding a :obj:`LogBuffer` ahead of the configured processors

    The structlog configuration is looked up on every call, so loggers
    created before :func:`configure_logging` follow it once it is applied.
    """

    def __init__(self, buffer, context):
        self._buffer = buffer
        self._context = context

    def bind(self, **new_values):
        return _BufferedLogger(self._buffer, dict(self._context, **new_values))

    def _resolve(self):
        config = structlog.get_config()
        return structlog.wrap_logger(
            config["logger_factory"](),
            processors=[self._buffer] + list(config["processors"]),
            wrapper_class=config["wrapper_class"],
            context_class=config["context_class"],
            **self._context
        )

    def __getattr__(self, name):
        return getattr(self._resolve(), name)


def get_logger(component, buffer=None):
    """Get a logger bound to a component name

    Args:
        component (str): Name of the emitting component
        buffer (:obj:`LogBuffer`, optional): Also capture every event into
            this buffer, ahead of the configured processors
    """
    if buffer is None:
        return structlog.get_logger().bind(component=component)
    return _BufferedLogger(buffer, {"component": component})
