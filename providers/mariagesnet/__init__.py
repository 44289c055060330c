"""Mariages.net source package – proxied search listing, storefront pages, normalization.

* :class:`MariagesnetSource` – :class:`~core.interfaces.SourceAdapter` for mariages.net
"""

from .fetcher import MariagesnetSource   # noqa: F401
