import asyncio
import datetime as dt
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from bootstrap import (
    INVALID_STRUCTURE_MESSAGE,
    BootstrapRunner,
    BootstrapState,
    DataSource,
    GenerativeDataSource,
    SampleDataSource,
    build_data_source,
)
from config import Settings
from dashboard_stats import compute_statistics, statistics_match
from exceptions import BootstrapError, BootstrapInProgressError
from store import VaccinationStore


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def sample_json(patient_count=4):
    data = SampleDataSource(patient_count=patient_count, today=dt.date(2025, 3, 1)).build()
    return data.model_dump_json(by_alias=True)


class TestGenerativeDataSource:

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        source = GenerativeDataSource(api_key=None)
        with pytest.raises(BootstrapError) as exc_info:
            await source.fetch()
        assert "OPENAI_API_KEY" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_parses_generated_snapshot(self):
        completions = FakeCompletions(content=sample_json(4))
        source = GenerativeDataSource(api_key="sk-test", model="gpt-test", patient_count=4,
                                      client=fake_client(completions))

        data = await source.fetch()

        assert len(data.patients) == 4
        assert data.vaccines
        assert len(completions.calls) == 1
        call = completions.calls[0]
        assert call["model"] == "gpt-test"
        assert call["response_format"] == {"type": "json_object"}
        assert "4 patients" in call["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_invalid_structure(self):
        completions = FakeCompletions(content='{"patients": []}')
        source = GenerativeDataSource(api_key="sk-test", client=fake_client(completions))

        with pytest.raises(BootstrapError) as exc_info:
            await source.fetch()
        assert exc_info.value.message == INVALID_STRUCTURE_MESSAGE

    @pytest.mark.asyncio
    async def test_empty_reply(self):
        source = GenerativeDataSource(api_key="sk-test", client=fake_client(FakeCompletions(content=None)))
        with pytest.raises(BootstrapError) as exc_info:
            await source.fetch()
        assert exc_info.value.message == INVALID_STRUCTURE_MESSAGE

    @pytest.mark.asyncio
    async def test_api_error_message_surfaces_verbatim(self):
        completions = FakeCompletions(error=OpenAIError("You exceeded your current quota"))
        source = GenerativeDataSource(api_key="sk-test", client=fake_client(completions))

        with pytest.raises(BootstrapError) as exc_info:
            await source.fetch()
        assert exc_info.value.message == "You exceeded your current quota"


class TestSampleDataSource:

    def test_snapshot_is_consistent(self):
        data = SampleDataSource(patient_count=12, today=dt.date(2025, 3, 1)).build()
        assert len(data.patients) == 12
        assert statistics_match(data.dashboard_stats, compute_statistics(data.patients, data.vaccines))

        store = VaccinationStore()
        store.load(data)
        assert store.is_consistent()

    def test_is_deterministic(self):
        a = SampleDataSource(seed=3, today=dt.date(2025, 3, 1)).build()
        b = SampleDataSource(seed=3, today=dt.date(2025, 3, 1)).build()
        assert a == b

    def test_selected_by_settings(self):
        assert isinstance(build_data_source(Settings(DATA_SOURCE="sample")), SampleDataSource)
        assert isinstance(build_data_source(Settings(DATA_SOURCE="generative")), GenerativeDataSource)


class FlakySource(DataSource):
    name = "flaky"

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise BootstrapError("Service unavailable")
        return SampleDataSource(patient_count=3, today=dt.date(2025, 3, 1)).build()


class BlockingSource(DataSource):
    def __init__(self):
        self.release = asyncio.Event()

    async def fetch(self):
        await self.release.wait()
        return SampleDataSource(patient_count=2, today=dt.date(2025, 3, 1)).build()


class TestBootstrapRunner:

    @pytest.mark.asyncio
    async def test_failure_then_manual_retry(self):
        store = VaccinationStore()
        runner = BootstrapRunner(FlakySource(failures=1), store)
        assert runner.state == BootstrapState.IDLE

        assert await runner.run() == BootstrapState.ERROR
        assert runner.error == "Service unavailable"
        assert store.statistics is None

        assert await runner.run() == BootstrapState.READY
        assert runner.error is None
        assert runner.attempts == 2
        assert store.statistics.total_patients == 3

    @pytest.mark.asyncio
    async def test_missing_key_becomes_error_state(self):
        runner = BootstrapRunner(GenerativeDataSource(api_key=None), VaccinationStore())
        await runner.run()
        assert runner.status()["state"] == "error"
        assert "OPENAI_API_KEY" in runner.status()["error"]

    @pytest.mark.asyncio
    async def test_unexpected_failure_becomes_error_state(self):
        class Broken(DataSource):
            async def fetch(self):
                raise RuntimeError("socket closed")

        runner = BootstrapRunner(Broken(), VaccinationStore())
        assert await runner.run() == BootstrapState.ERROR
        assert runner.error == "socket closed"

    @pytest.mark.asyncio
    async def test_second_call_while_in_flight_is_refused(self):
        source = BlockingSource()
        runner = BootstrapRunner(source, VaccinationStore())

        task = asyncio.create_task(runner.run())
        await asyncio.sleep(0)
        assert runner.state == BootstrapState.LOADING

        with pytest.raises(BootstrapInProgressError):
            await runner.run()

        source.release.set()
        assert await task == BootstrapState.READY

    @pytest.mark.asyncio
    async def test_cancelled_load_returns_to_idle(self):
        runner = BootstrapRunner(BlockingSource(), VaccinationStore())

        task = asyncio.create_task(runner.run())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert runner.state == BootstrapState.IDLE
        assert runner.store.statistics is None
