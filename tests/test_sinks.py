import asyncio
import json

import aiohttp
import pytest

from core.cancel import CancellationToken
from core.config import SearchSettings
from core.infra.geocode import NOMINATIM_ENDPOINT
from core.infra.http import HttpStatusError
from core.models import ErrorCode, PipelineError
from core.schema import NormalizedRecord, ResultItem, build_parsed_output
from main import apply_args, build_context, load_prior_items, parse_args
from sinks.json_sink import ErrorLogSink, JsonOutputSink


def _item(provider_id):
    return ResultItem(normalized=NormalizedRecord(provider="1001dj", provider_id=provider_id))


class TestJsonOutputSink:
    @pytest.mark.asyncio
    async def test_writes_document_on_exit(self, tmp_path):
        path = tmp_path / "out" / "profiles.json"
        async with JsonOutputSink(path) as sink:
            await sink.handle(_item("1"))
            await sink.handle(_item("2"))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert sink.written == path
        assert data["meta"]["count"] == 2
        assert data["meta"]["source"] == "presta-finder"
        assert [r["normalized"]["providerId"] for r in data["results"]] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_nothing_written_when_aborted(self, tmp_path):
        path = tmp_path / "profiles.json"
        with pytest.raises(RuntimeError):
            async with JsonOutputSink(path) as sink:
                await sink.handle(_item("1"))
                raise RuntimeError("interrupted")
        assert not path.exists()
        assert sink.written is None


@pytest.mark.asyncio
async def test_error_log_appends_json_lines(tmp_path):
    path = tmp_path / "logs" / "errors.jsonl"
    async with ErrorLogSink(path) as sink:
        for target in ("a", "b"):
            await sink.handle(
                PipelineError.build(
                    ErrorCode.PROFILE_FETCH_FAILED, provider="1001dj", target=target, message="HTTP 500"
                )
            )

    lines = path.read_text(encoding="utf-8").splitlines()
    assert sink.count == 2
    assert [json.loads(line)["target"] for line in lines] == ["a", "b"]


class TestCli:
    def test_args_override_config(self, settings):
        args = parse_args(["--limit", "5", "--mode", "batch", "--location", "Lyon", "--dry-run"])
        updated = apply_args(settings, args)
        assert updated.run.fetch_limit == 5
        assert updated.run.mode == "batch"
        assert updated.run.dry_run is True
        assert updated.search.location == "Lyon"

    def test_no_args_keep_config(self, settings):
        updated = apply_args(settings, parse_args([]))
        assert updated.run == settings.run
        assert updated.search == settings.search

    def test_load_prior_items_skips_missing_and_unknown(self, tmp_path):
        good = tmp_path / "good.json"
        good.write_text(build_parsed_output("presta-finder", [_item("1")]).dump(), encoding="utf-8")
        old = tmp_path / "old.json"
        data = json.loads(good.read_text(encoding="utf-8"))
        data["meta"]["schemaVersion"] = "0.1"
        old.write_text(json.dumps(data), encoding="utf-8")

        items = load_prior_items([str(good), str(old), str(tmp_path / "missing.json")])

        assert [i.normalized.provider_id for i in items] == ["1"]

    def test_load_prior_items_skips_corrupt_files(self, tmp_path):
        truncated = tmp_path / "truncated.json"
        truncated.write_text("{not json", encoding="utf-8")
        meta_only = tmp_path / "meta-only.json"
        meta_only.write_text(json.dumps({"meta": {"schemaVersion": "1.0"}}), encoding="utf-8")
        good = tmp_path / "good.json"
        good.write_text(build_parsed_output("presta-finder", [_item("7")]).dump(), encoding="utf-8")

        items = load_prior_items([str(truncated), str(meta_only), str(good)])

        assert [i.normalized.provider_id for i in items] == ["7"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [
        HttpStatusError(503, "GET", NOMINATIM_ENDPOINT, "maintenance"),
        aiohttp.ClientConnectionError("connection reset"),
        asyncio.TimeoutError(),
    ],
)
async def test_build_context_survives_geocoder_outage(http, settings, failure):
    http.route(NOMINATIM_ENDPOINT, failure)
    settings = settings.model_copy(update={"search": SearchSettings(location="Paris", date="2026-06-20")})

    context = await build_context(settings, http, CancellationToken())

    assert context.location is None
    assert context.date == "2026-06-20"
    assert http.requested() == [NOMINATIM_ENDPOINT]
