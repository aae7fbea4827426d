"""Console sink: one compact JSON object per delivered entry."""

from __future__ import annotations

import json
import sys
from typing import TextIO


class StdoutSink:
    """Write records to `stream` (sys.stdout when omitted, resolved per write)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def write(self, record: dict) -> None:
        stream = self._stream or sys.stdout
        print(json.dumps(record, default=str, separators=(",", ":")), file=stream, flush=True)
