"""LiveTonight source package – search API listing, profile pages, normalization.

* :class:`LiveTonightSource` – :class:`~core.interfaces.SourceAdapter` for livetonight.fr
"""

from .fetcher import LiveTonightSource   # noqa: F401
