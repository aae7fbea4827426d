"""Record sinks: strategy pattern for where delivered entries are written.

Wrap a sink with as_handler() to drive it from a LogDriver.
"""

from logrelay.sinks.base import RecordSink, as_handler, entry_record
from logrelay.sinks.jsonl_sink import JsonlSink
from logrelay.sinks.log_sink import StructuredLogSink
from logrelay.sinks.stdout_sink import StdoutSink

__all__ = [
    "RecordSink",
    "as_handler",
    "entry_record",
    "JsonlSink",
    "StdoutSink",
    "StructuredLogSink",
]
