import pytest

from core import plugin_loader
from core.config import Secrets
from providers.dj1001 import Dj1001Source
from providers.linkaband import LinkabandSource
from providers.livetonight import LiveTonightSource
from providers.mariagesnet import MariagesnetSource


def test_discovers_all_sources():
    plugin_loader.refresh_registry()
    assert plugin_loader.list_available() == {
        "1001dj": Dj1001Source,
        "linkaband": LinkabandSource,
        "livetonight": LiveTonightSource,
        "mariagesnet": MariagesnetSource,
    }


def test_unknown_source():
    with pytest.raises(KeyError, match="not found"):
        plugin_loader.get("nope")


def test_create_adapters_respects_enabled(http, cache, settings_factory):
    settings = settings_factory(secrets=Secrets())
    for name in ("linkaband", "mariagesnet"):
        settings.providers[name] = settings.providers[name].model_copy(update={"enabled": False})

    adapters = plugin_loader.create_adapters(settings, http=http, cache=cache)

    assert sorted(a.name for a in adapters) == ["1001dj", "livetonight"]
    assert all(a.min_interval == 0 for a in adapters)


def test_create_adapters_by_name(http, cache, settings):
    adapters = plugin_loader.create_adapters(settings, http=http, cache=cache, names=["livetonight"])
    assert [type(a) for a in adapters] == [LiveTonightSource]


def test_credential_gated_sources(http, cache, settings_factory):
    settings = settings_factory(secrets=Secrets(linkaband_api_key="k"))
    adapters = plugin_loader.create_adapters(settings, http=http, cache=cache)
    available = {a.name: a.is_available() for a in adapters}
    assert available == {"1001dj": True, "linkaband": True, "livetonight": True, "mariagesnet": False}
