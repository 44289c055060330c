"""Linkaband source package – recommendation + artist-batch APIs, profile pages.

* :class:`LinkabandSource` – :class:`~core.interfaces.SourceAdapter` for linkaband.com,
  available only when ``LINKABAND_API_KEY`` is set
"""

from .fetcher import LinkabandSource   # noqa: F401
