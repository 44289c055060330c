"""1001dj source package – search listing, profile page parsing, normalization.

* :class:`Dj1001Source` – :class:`~core.interfaces.SourceAdapter` for 1001dj.com
"""

from .fetcher import Dj1001Source   # noqa: F401
