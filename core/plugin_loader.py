"""
Plugin loader for automatic discovery and registration of source adapters.
"""

import importlib
import inspect
import logging
import pathlib
from types import ModuleType
from typing import TYPE_CHECKING, Dict, List, Optional, Type

from .interfaces import SourceAdapter

if TYPE_CHECKING:
    from .config import Settings
    from .infra.cache import CacheService
    from .infra.http import HttpClient

logger = logging.getLogger(__name__)

# Provider packages live next to core/
PROVIDERS_DIR = pathlib.Path(__file__).parent.parent / "providers"
PROVIDERS_PACKAGE = "providers"

# Global registry of discovered adapter classes, keyed by source name
_REGISTRY: Dict[str, Type[SourceAdapter]] = {}


def _load_package(path: pathlib.Path) -> ModuleType:
    """Import one provider sub-package, e.g. ``providers.livetonight``."""
    full_name = f"{PROVIDERS_PACKAGE}.{path.name}"
    mod = importlib.import_module(full_name)
    logger.debug(f"Loaded provider package: {full_name}")
    return mod


def refresh_registry() -> None:
    """Scan provider sub-packages and register SourceAdapter subclasses."""
    _REGISTRY.clear()

    if not PROVIDERS_DIR.exists():
        logger.warning(f"Providers directory does not exist: {PROVIDERS_DIR}")
        return

    package_count = 0
    for pkg_dir in sorted(PROVIDERS_DIR.iterdir()):
        if not pkg_dir.is_dir() or pkg_dir.name.startswith("_"):
            continue
        if not (pkg_dir / "__init__.py").exists():
            continue

        try:
            mod = _load_package(pkg_dir)
        except Exception as e:
            logger.error(f"Failed to load provider package {pkg_dir.name}: {e}")
            continue
        package_count += 1

        for _, obj in inspect.getmembers(mod, inspect.isclass):
            if (issubclass(obj, SourceAdapter) and
                    obj is not SourceAdapter and
                    not inspect.isabstract(obj) and
                    obj.name):
                if obj.name in _REGISTRY and _REGISTRY[obj.name] is not obj:
                    logger.warning(f"Duplicate source name {obj.name!r}, keeping {_REGISTRY[obj.name].__name__}")
                    continue
                _REGISTRY[obj.name] = obj
                logger.debug(f"Registered source: {obj.name} ({obj.__name__})")

    logger.info(f"Provider discovery complete: {package_count} packages, {len(_REGISTRY)} sources")


def get(name: str) -> Type[SourceAdapter]:
    """Get an adapter class by its source name (e.g. ``'1001dj'``).

    Raises:
        KeyError: If no source with that name was discovered
    """
    if not _REGISTRY:
        refresh_registry()

    if name not in _REGISTRY:
        available = sorted(_REGISTRY)
        raise KeyError(f"Source '{name}' not found. Available: {available}")

    return _REGISTRY[name]


def list_available() -> Dict[str, Type[SourceAdapter]]:
    """Get a copy of all registered adapter classes."""
    if not _REGISTRY:
        refresh_registry()
    return _REGISTRY.copy()


def create_adapters(
    settings: "Settings",
    *,
    http: "HttpClient",
    cache: "CacheService",
    names: Optional[List[str]] = None,
) -> List[SourceAdapter]:
    """Instantiate the requested (default: all enabled) sources, in discovery order."""
    available = list_available()
    selected = names if names is not None else settings.enabled_providers(list(available))
    return [get(name)(http=http, cache=cache, settings=settings) for name in selected]
