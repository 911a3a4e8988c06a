"""
End-to-end tests for crawl orchestration.

A mocked Go module index and proxy serve small module zips; the crawl
runs the real discovery, worker pool, extractor and SQLite store.
"""

import asyncio
import json
import logging
import threading
from datetime import datetime, timezone

import httpx
import pytest

from pkgindex.core.exceptions import ConfigurationError, DiscoveryError
from pkgindex.crawler import Crawler, CrawlStatus, NameListSource, crawl_packages
from pkgindex.crawler.worker import TEMP_DIR_PREFIX, run_blocking
from pkgindex.ecosystems import GoEcosystem, NpmEcosystem
from pkgindex.extractors import GoExtractor

INDEX_HOST = "index.golang.org"
PROXY_HOST = "proxy.golang.org"


class BrokenLines(httpx.AsyncByteStream):
    """Index body that fails after the given lines."""

    def __init__(self, lines: list[str]) -> None:
        self.lines = lines

    async def __aiter__(self):
        for line in self.lines:
            yield line.encode()
        raise httpx.ReadError("connection reset by peer")


class FakeGoRegistry:
    """
    Module index and proxy backed by in-memory zips.

    Modules in fail answer HTTP 500; modules in block never answer.
    errors maps a module to the (status, headers) its zip request gets.
    Index entries are all stamped 2024-01-01 unless timestamps is set,
    in which case the nth module is published on day n+1 of January.
    With break_after set the index stream fails after that many lines.
    """

    def __init__(self, go_module_zip, modules, fail=(), block=(), index_status=200,
                 timestamps=False, break_after=None, errors=None):
        self.go_module_zip = go_module_zip
        self.modules = list(modules)
        self.fail = set(fail)
        self.block = set(block)
        self.errors = dict(errors or {})
        self.index_status = index_status
        self.timestamps = timestamps
        self.break_after = break_after
        self.index_requests: list[str | None] = []
        self.downloads: list[str] = []

    def published(self, i: int) -> str:
        return f"2024-01-{i + 1:02d}T00:00:00Z" if self.timestamps else "2024-01-01T00:00:00Z"

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == INDEX_HOST:
            self.index_requests.append(request.url.params.get("since"))
            if self.index_status != 200:
                return httpx.Response(self.index_status)
            lines = [
                json.dumps({"Path": m, "Version": "v1.0.0", "Timestamp": self.published(i)}) + "\n"
                for i, m in enumerate(self.modules)
            ]
            if self.break_after is not None:
                return httpx.Response(200, stream=BrokenLines(lines[:self.break_after]))
            return httpx.Response(200, text="".join(lines))

        if request.url.host == PROXY_HOST and request.url.path.endswith(".zip"):
            module, _, version = request.url.path.lstrip("/").removesuffix(".zip").partition("/@v/")
            self.downloads.append(module)
            if module in self.block:
                await asyncio.sleep(3600)
            if module in self.fail:
                return httpx.Response(500)
            if module in self.errors:
                status, headers = self.errors[module]
                return httpx.Response(status, headers=headers)
            return httpx.Response(200, content=self.go_module_zip(module, version))

        return httpx.Response(404)


@pytest.fixture
def make_crawler(store, test_settings, mock_client):
    """Build a Go crawler against a fake registry."""

    def factory(registry: FakeGoRegistry, **kwargs) -> Crawler:
        ecosystem = GoEcosystem(mock_client(registry), test_settings.http, test_settings.archive)
        return Crawler(ecosystem, store, GoExtractor(), test_settings, **kwargs)

    return factory


def _leftover_temp_dirs(test_settings) -> list:
    work = test_settings.crawler.temp_dir
    if not work.exists():
        return []
    return [p for p in work.iterdir() if p.name.startswith(TEMP_DIR_PREFIX)]


class TestCrawlRun:
    """Tests for one-shot runs."""

    @pytest.mark.asyncio
    async def test_failed_job_does_not_stop_run(self, make_crawler, go_module_zip, store,
                                               test_settings):
        registry = FakeGoRegistry(
            go_module_zip,
            ["example.com/m1", "example.com/m2", "example.com/m3"],
            fail={"example.com/m2"},
        )
        crawler = make_crawler(registry)

        result = await crawler.run()

        assert result.status == CrawlStatus.COMPLETED
        assert result.stats.processed == 3
        assert result.stats.succeeded == 2
        assert result.stats.failed == 1
        assert store.get_package("go", "example.com/m2") is None
        assert _leftover_temp_dirs(test_settings) == []

    @pytest.mark.asyncio
    async def test_package_symbols_and_imports_stored(self, make_crawler, go_module_zip, store):
        crawler = make_crawler(FakeGoRegistry(go_module_zip, ["example.com/hello"]))

        result = await crawler.run()

        package = store.get_package("go", "example.com/hello")
        assert package["version"] == "v1.0.0"
        assert package["license"] == "MIT"
        assert package["redistributable"] == 1
        assert package["is_stable"] == 1

        symbols = {s["name"]: s for s in store.get_symbols(package["id"])}
        assert {"Greeting", "Greeter", "Greeter.Greet", "New", "helper", "Util"} == set(symbols)
        assert "TestX" not in symbols
        assert symbols["New"]["deprecated"] == 1
        assert symbols["helper"]["is_public"] == 0
        assert symbols["Util"]["file_path"] == "internal/util/util.go"
        assert result.stats.symbols_indexed == len(symbols)

        edges = {(e["importer"], e["imported"]) for e in store.get_imports("example.com/hello")}
        assert edges == {
            ("example.com/hello", "fmt"),
            ("example.com/hello", "strings"),
            ("example.com/hello/internal/util", "example.com/hello"),
        }

    @pytest.mark.asyncio
    async def test_recrawl_replaces_symbols(self, make_crawler, go_module_zip, store):
        registry = FakeGoRegistry(go_module_zip, ["example.com/hello"])

        await make_crawler(registry).run()
        await make_crawler(registry).run()

        package = store.get_package("go", "example.com/hello")
        assert len(store.get_symbols(package["id"])) == 6
        assert store.count_packages() == 1

    @pytest.mark.asyncio
    async def test_recrawl_stores_new_version_contents(self, make_crawler, go_module_zip,
                                                       make_zip, store):
        """Symbols and import edges dropped by a newer release disappear from the index."""
        registry = FakeGoRegistry(go_module_zip, ["example.com/hello"])
        await make_crawler(registry).run()

        def smaller_module(module: str, version: str) -> bytes:
            prefix = f"{module}@{version}"
            return make_zip({
                f"{prefix}/go.mod": f"module {module}\n\ngo 1.22\n",
                f"{prefix}/hello.go": (
                    'package hello\n\nimport "os"\n\n'
                    "// Exit stops the process.\n"
                    "func Exit() {\n\tos.Exit(0)\n}\n"
                ),
            })

        registry.go_module_zip = smaller_module
        result = await make_crawler(registry).run()

        assert result.stats.succeeded == 1
        package = store.get_package("go", "example.com/hello")
        assert package["go_version"] == "1.22"
        assert {s["name"] for s in store.get_symbols(package["id"])} == {"Exit"}
        edges = {(e["importer"], e["imported"]) for e in store.get_imports("example.com/hello")}
        assert edges == {("example.com/hello", "os")}

    @pytest.mark.asyncio
    async def test_go_module_metadata_stored(self, make_crawler, go_module_zip, store):
        await make_crawler(FakeGoRegistry(go_module_zip, ["example.com/hello"])).run()

        package = store.get_package("go", "example.com/hello")
        assert package["module_path"] == "example.com/hello"
        assert package["go_version"] == "1.21"
        assert package["has_valid_mod"] == 1
        assert package["go_mod"].startswith("module example.com/hello")
        assert "MIT License" in package["license_text"]
        assert package["description"] == "Package hello greets people."

    @pytest.mark.asyncio
    async def test_source_analysis_runs_off_event_loop(self, store, test_settings, mock_client,
                                                       go_module_zip):
        seen: dict[str, threading.Thread] = {}

        class RecordingGo(GoEcosystem):
            def enrich(self, package, source_root):
                seen["enrich"] = threading.current_thread()
                super().enrich(package, source_root)

            def extract_imports(self, source_root, package):
                seen["imports"] = threading.current_thread()
                return super().extract_imports(source_root, package)

        registry = FakeGoRegistry(go_module_zip, ["example.com/hello"])
        ecosystem = RecordingGo(mock_client(registry), test_settings.http, test_settings.archive)
        result = await Crawler(ecosystem, store, GoExtractor(), test_settings).run()

        assert result.stats.succeeded == 1
        assert set(seen) == {"enrich", "imports"}
        assert all(t is not threading.main_thread() for t in seen.values())

    @pytest.mark.asyncio
    async def test_failure_log_marks_retryable(self, make_crawler, go_module_zip, caplog):
        registry = FakeGoRegistry(
            go_module_zip,
            ["example.com/busy", "example.com/gone"],
            errors={
                "example.com/busy": (503, {"Retry-After": "120"}),
                "example.com/gone": (404, {}),
            },
        )

        with caplog.at_level(logging.WARNING, logger="pkgindex"):
            result = await make_crawler(registry).run()

        assert result.stats.failed == 2
        failures = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Job failed")]
        busy = next(m for m in failures if "[path=example.com/busy]" in m)
        gone = next(m for m in failures if "[path=example.com/gone]" in m)
        assert "[stage=download]" in busy
        assert "[retryable=yes] [retry_after=120s]" in busy
        assert "[retryable=no]" in gone
        assert "retry_after" not in gone

    @pytest.mark.asyncio
    async def test_filtered_modules_skipped(self, make_crawler, go_module_zip):
        registry = FakeGoRegistry(
            go_module_zip, ["example.com/ok", "example.com/x/vendor/y", "example.com/tool.test"])

        result = await make_crawler(registry).run()

        assert result.stats.skipped == 2
        assert result.stats.processed == 1
        assert registry.downloads == ["example.com/ok"]

    @pytest.mark.asyncio
    async def test_max_modules(self, make_crawler, go_module_zip, test_settings):
        test_settings.crawler.max_modules = 2
        registry = FakeGoRegistry(go_module_zip, [f"example.com/m{i}" for i in range(5)])

        result = await make_crawler(registry).run()

        assert result.stats.processed == 2
        assert sorted(registry.downloads) == ["example.com/m0", "example.com/m1"]

    @pytest.mark.asyncio
    async def test_discovery_failure(self, make_crawler, go_module_zip, store):
        crawler = make_crawler(FakeGoRegistry(go_module_zip, [], index_status=502))

        with pytest.raises(DiscoveryError):
            await crawler.run()

        assert crawler.status == CrawlStatus.FAILED
        assert "502" in crawler.get_result().error
        assert store.get_last_crawl_time() is None

    @pytest.mark.asyncio
    async def test_name_list_source(self, make_crawler, go_module_zip, store):
        registry = FakeGoRegistry(go_module_zip, [])
        source = NameListSource(["example.com/pinned@v1.0.0"])

        result = await make_crawler(registry, source=source).run()

        assert result.stats.succeeded == 1
        assert registry.index_requests == []
        assert store.get_package("go", "example.com/pinned") is not None

    def test_ecosystem_without_changelog_needs_source(self, store, test_settings, mock_client):
        ecosystem = NpmEcosystem(mock_client(lambda r: httpx.Response(404)))

        with pytest.raises(ConfigurationError):
            Crawler(ecosystem, store, GoExtractor(), test_settings)


class TestIncremental:
    """Tests for watermark handling."""

    @pytest.mark.asyncio
    async def test_first_run_is_full_crawl(self, make_crawler, go_module_zip, store):
        registry = FakeGoRegistry(go_module_zip, ["example.com/m1"])
        started = datetime.now(timezone.utc)

        result = await make_crawler(registry).run_incremental()

        assert result.since is None
        assert registry.index_requests == [None]
        watermark = store.get_last_crawl_time()
        assert watermark is not None
        assert watermark >= started

    @pytest.mark.asyncio
    async def test_second_run_uses_watermark(self, make_crawler, go_module_zip, store):
        registry = FakeGoRegistry(go_module_zip, ["example.com/m1"])

        await make_crawler(registry).run_incremental()
        watermark = store.get_last_crawl_time()
        result = await make_crawler(registry).run_incremental()

        assert result.since == watermark
        assert registry.index_requests[1] == watermark.strftime("%Y-%m-%dT%H:%M:%SZ")
        assert store.get_last_crawl_time() >= watermark

    @pytest.mark.asyncio
    async def test_full_pass_records_run_start(self, make_crawler, go_module_zip, store):
        result = await make_crawler(FakeGoRegistry(go_module_zip, ["example.com/m1"])).run()

        assert result.watermark == result.started_at
        assert result.watermark <= result.completed_at
        assert store.get_last_crawl_time() == result.started_at

    @pytest.mark.asyncio
    async def test_max_modules_records_last_enqueued_time(self, make_crawler, go_module_zip,
                                                          store, test_settings):
        test_settings.crawler.max_modules = 2
        registry = FakeGoRegistry(
            go_module_zip, [f"example.com/m{i}" for i in range(5)], timestamps=True)

        result = await make_crawler(registry).run()

        assert result.status == CrawlStatus.COMPLETED
        assert result.stats.processed == 2
        assert store.get_last_crawl_time() == datetime(2024, 1, 2, tzinfo=timezone.utc)
        assert result.watermark == datetime(2024, 1, 2, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_interrupted_index_records_last_enqueued_time(self, make_crawler,
                                                                go_module_zip, store):
        registry = FakeGoRegistry(
            go_module_zip, [f"example.com/m{i}" for i in range(4)],
            timestamps=True, break_after=1)

        result = await make_crawler(registry).run()

        assert result.status == CrawlStatus.COMPLETED
        assert result.stats.processed == 1
        assert store.get_last_crawl_time() == datetime(2024, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_cut_short_run_never_moves_watermark_back(self, make_crawler, go_module_zip,
                                                            store, test_settings):
        previous = datetime(2024, 6, 1, tzinfo=timezone.utc)
        store.set_last_crawl_time(previous)
        test_settings.crawler.max_modules = 1
        registry = FakeGoRegistry(
            go_module_zip, ["example.com/m0", "example.com/m1"], timestamps=True)

        result = await make_crawler(registry).run_incremental()

        assert result.stats.processed == 1
        assert result.watermark is None
        assert store.get_last_crawl_time() == previous

    @pytest.mark.asyncio
    async def test_name_list_run_keeps_watermark(self, make_crawler, go_module_zip, store):
        source = NameListSource(["example.com/pinned@v1.0.0"])

        result = await make_crawler(FakeGoRegistry(go_module_zip, []), source=source).run()

        assert result.status == CrawlStatus.COMPLETED
        assert result.watermark is None
        assert store.get_last_crawl_time() is None


class TestCancellation:
    """Tests for cancelling runs."""

    @pytest.mark.asyncio
    async def test_cancel_mid_run(self, make_crawler, go_module_zip, store, test_settings):
        modules = [f"example.com/m{i}" for i in range(1, 6)]
        registry = FakeGoRegistry(go_module_zip, modules, block=set(modules[1:]))
        crawler = make_crawler(registry)

        task = asyncio.create_task(crawler.run())
        for _ in range(500):
            if crawler.progress.succeeded >= 1 and len(registry.downloads) >= 3:
                break
            await asyncio.sleep(0.01)
        crawler.cancel()
        result = await asyncio.wait_for(task, timeout=5)

        assert result.status == CrawlStatus.CANCELLED
        assert result.stats.succeeded == 1
        assert result.stats.processed < len(modules)
        assert store.get_last_crawl_time() is None
        assert _leftover_temp_dirs(test_settings) == []

    @pytest.mark.asyncio
    async def test_cancel_awaiting_task(self, make_crawler, go_module_zip, test_settings):
        registry = FakeGoRegistry(go_module_zip, ["example.com/m1"], block={"example.com/m1"})
        crawler = make_crawler(registry)

        task = asyncio.create_task(crawler.run())
        for _ in range(500):
            if registry.downloads:
                break
            await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert crawler.status == CrawlStatus.CANCELLED
        assert _leftover_temp_dirs(test_settings) == []

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, make_crawler, go_module_zip):
        registry = FakeGoRegistry(go_module_zip, ["example.com/m1"])
        crawler = make_crawler(registry)

        crawler.cancel()
        result = await crawler.run()

        assert result.status == CrawlStatus.CANCELLED
        assert registry.index_requests == []

    @pytest.mark.asyncio
    async def test_schedule_runs_until_cancelled(self, make_crawler, go_module_zip, store):
        registry = FakeGoRegistry(go_module_zip, ["example.com/m1"])
        crawler = make_crawler(registry)

        task = asyncio.create_task(crawler.run_with_schedule(interval=0.01))
        for _ in range(500):
            if len(registry.index_requests) >= 3:
                break
            await asyncio.sleep(0.01)
        crawler.cancel()
        results = await asyncio.wait_for(task, timeout=5)

        assert len(results) >= 2
        assert results[0].status == CrawlStatus.COMPLETED
        assert results[0].since is None
        assert results[1].since is not None

    @pytest.mark.asyncio
    async def test_schedule_survives_discovery_failure(self, make_crawler, go_module_zip):
        registry = FakeGoRegistry(go_module_zip, [], index_status=500)
        crawler = make_crawler(registry)

        task = asyncio.create_task(crawler.run_with_schedule(interval=0.01))
        for _ in range(500):
            if len(registry.index_requests) >= 2:
                break
            await asyncio.sleep(0.01)
        crawler.cancel()
        results = await asyncio.wait_for(task, timeout=5)

        assert results[0].status == CrawlStatus.FAILED
        assert len(registry.index_requests) >= 2


class TestRunBlocking:
    """Tests for run_blocking."""

    @pytest.mark.asyncio
    async def test_returns_value(self):
        assert await run_blocking(sum, [1, 2, 3]) == 6

    @pytest.mark.asyncio
    async def test_cancellation_waits_for_thread(self):
        started = threading.Event()
        finished = threading.Event()

        def slow(cancel_event: threading.Event) -> None:
            started.set()
            cancel_event.wait(timeout=5)
            finished.set()

        cancel_event = threading.Event()
        task = asyncio.create_task(run_blocking(slow, cancel_event, cancel_event=cancel_event))
        await asyncio.to_thread(started.wait, 5)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert cancel_event.is_set()
        assert finished.is_set()


class TestCrawlPackages:
    """Tests for the crawl_packages entry point."""

    @pytest.mark.asyncio
    async def test_unknown_ecosystem(self, test_settings, store):
        with pytest.raises(ConfigurationError):
            await crawl_packages(test_settings, ecosystem="cpan", store=store)

    @pytest.mark.asyncio
    async def test_source_without_names_for_npm(self, test_settings, store):
        with pytest.raises(ConfigurationError):
            await crawl_packages(test_settings, ecosystem="npm", store=store)
