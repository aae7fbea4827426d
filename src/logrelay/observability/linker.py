"""RelayEventLinker: isolated event namespace for logrelay observability.

All logrelay subscribers register here. Separate from any other
pyventus usage in the process.
"""

from __future__ import annotations

from pyventus.events import EventLinker


class RelayEventLinker(EventLinker):
    """Isolated event namespace for logrelay observability."""

    pass
