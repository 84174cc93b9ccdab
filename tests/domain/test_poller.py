"""Tests for poll cycles and the supervising scheduler."""

import asyncio
from unittest.mock import MagicMock, patch

import discord
import pytest

from conftest import FakeNotifier, FakeSource, build_commit
from commit_relay.adapters.discord.notifier import DiscordNotificationAdapter
from commit_relay.adapters.storage.json_store import JsonCursorStore
from commit_relay.domain.detector import ChangeDetector
from commit_relay.domain.enricher import DetailEnricher
from commit_relay.domain.models import CommitDetails, CycleResult, RepositoryTarget
from commit_relay.domain.poller import CommitPoller, PollScheduler
from commit_relay.exceptions import CursorWriteError, GitHubAPIError
from commit_relay.ports.outbound import DeliveryResult


def _make_poller(source, store, notifier, history_fallback=False):
    return CommitPoller(
        detector=ChangeDetector(source, window_size=20),
        enricher=DetailEnricher(source),
        store=store,
        notifier=notifier,
        history_fallback=history_fallback,
    )


class FailingStore:
    def __init__(self, cursor=None):
        self.cursor = cursor

    def get(self, repo_key):
        return self.cursor

    def set(self, repo_key, commit_id, metadata=None):
        raise CursorWriteError(repo_key, commit_id, "disk full")

    def get_info(self, repo_key):
        return None

    def reset(self, repo_key):
        return False


def _bad_request():
    response = MagicMock()
    response.status = 400
    response.reason = "Bad Request"
    return discord.HTTPException(response, "Invalid Form Body")


class StrictChannel:
    """Channel that rejects embeds the way Discord does for oversized fields."""

    def __init__(self, reject_all_embeds=False):
        self.reject_all_embeds = reject_all_embeds
        self.embeds = []
        self.texts = []

    async def send(self, content=None, embed=None):
        if embed is not None:
            if self.reject_all_embeds or any(len(f.value) > 1024 for f in embed.fields):
                raise _bad_request()
            self.embeds.append(embed)
        else:
            self.texts.append(content)
        sent = MagicMock()
        sent.id = len(self.embeds) + len(self.texts)
        return sent


def _discord_notifier(channel):
    client = MagicMock()
    client.get_channel = MagicMock(return_value=channel)
    return DiscordNotificationAdapter(client)


class StallingNotifier(FakeNotifier):
    """Delivers the first embed, then blocks until cancelled."""

    async def send_embed(self, channel_id, payload):
        if self.embeds:
            await asyncio.Event().wait()
        return await super().send_embed(channel_id, payload)


@pytest.fixture
def store(tmp_dir):
    return JsonCursorStore(tmp_dir)


@pytest.fixture
def notifier():
    return FakeNotifier()


# ---------------------------------------------------------------------------
# CommitPoller.run_cycle
# ---------------------------------------------------------------------------

class TestRunCycle:
    @pytest.mark.asyncio
    async def test_first_run_seeds_with_newest(self, target, window, store, notifier):
        poller = _make_poller(FakeSource(window), store, notifier)
        result = await poller.run_cycle(target)
        assert result.success is True
        assert result.delivered == 1
        assert len(notifier.embeds) == 1
        assert notifier.embeds[0][0] == target.channel_id
        assert store.get(target.key) == window[0].id

    @pytest.mark.asyncio
    async def test_delivers_chronologically_and_advances(self, target, window, store, notifier):
        store.set(target.key, window[2].id)
        poller = _make_poller(FakeSource(window), store, notifier)
        result = await poller.run_cycle(target)
        assert [p.description for _, p in notifier.embeds] == ["commit 4", "commit 5"]
        assert result.detected == 2 and result.delivered == 2
        assert store.get(target.key) == window[0].id
        info = store.get_info(target.key)
        assert info.metadata["message"] == "commit 5"
        assert info.metadata["author"] == "Ada"

    @pytest.mark.asyncio
    async def test_nothing_new_leaves_cursor(self, target, window, store, notifier):
        store.set(target.key, window[0].id)
        before = store.get_info(target.key).last_updated
        poller = _make_poller(FakeSource(window), store, notifier)
        result = await poller.run_cycle(target)
        assert result.success is True and result.delivered == 0
        assert notifier.embeds == []
        assert store.get_info(target.key).last_updated == before

    @pytest.mark.asyncio
    async def test_enrichment_failure_still_notifies_and_advances(self, target, window, store, notifier):
        store.set(target.key, window[1].id)
        source = FakeSource(window)
        source.failing_details.add(window[0].id)
        poller = _make_poller(source, store, notifier)

        await poller.run_cycle(target)

        payload = notifier.embeds[0][1]
        values = {f.name: f.value for f in payload.fields}
        assert values["📊 Changes"] == "No changes"
        assert values["🔧 Files"] == "No files changed"
        assert store.get(target.key) == window[0].id

    @pytest.mark.asyncio
    async def test_enriched_details_reach_payload(self, target, window, store, notifier):
        store.set(target.key, window[1].id)
        details = {window[0].id: CommitDetails(added=["a.py"], removed=["b.py"])}
        poller = _make_poller(FakeSource(window, details=details), store, notifier)
        await poller.run_cycle(target)
        values = {f.name: f.value for f in notifier.embeds[0][1].fields}
        assert values["📊 Changes"] == "+1 -1"

    @pytest.mark.asyncio
    async def test_source_failure_propagates_and_keeps_cursor(self, target, window, store, notifier):
        store.set(target.key, window[2].id)
        source = FakeSource(window)
        source.window_error = GitHubAPIError("HTTP 503", status_code=503)
        poller = _make_poller(source, store, notifier)
        with pytest.raises(GitHubAPIError):
            await poller.run_cycle(target)
        assert store.get(target.key) == window[2].id
        assert notifier.embeds == []

    @pytest.mark.asyncio
    async def test_destination_unavailable_still_advances(self, target, window, store, notifier):
        notifier.embed_result = DeliveryResult(success=False, error="channel 4242 not found")
        poller = _make_poller(FakeSource(window), store, notifier)
        result = await poller.run_cycle(target)
        assert result.success is True
        assert result.delivered == 0
        assert store.get(target.key) == window[0].id

    @pytest.mark.asyncio
    async def test_rejected_embed_falls_back_to_text(self, target, window, store, notifier):
        notifier.embed_result = DeliveryResult(success=False, error="Missing Permissions", retry_as_text=True)
        poller = _make_poller(FakeSource(window), store, notifier)
        result = await poller.run_cycle(target)
        assert result.delivered == 1
        assert len(notifier.texts) == 1
        assert "pushed to **Widgets**" in notifier.texts[0][1]

    @pytest.mark.asyncio
    async def test_transport_error_advances_to_last_delivered(self, target, window, store, notifier):
        store.set(target.key, window[3].id)  # c2 → new: c3, c4, c5
        notifier.fail_on_call = 2
        poller = _make_poller(FakeSource(window), store, notifier)
        with pytest.raises(RuntimeError):
            await poller.run_cycle(target)
        assert [p.description for _, p in notifier.embeds] == ["commit 3"]
        assert store.get(target.key) == window[2].id

    @pytest.mark.asyncio
    async def test_transport_error_on_first_leaves_cursor(self, target, window, store, notifier):
        store.set(target.key, window[3].id)
        notifier.fail_on_call = 1
        poller = _make_poller(FakeSource(window), store, notifier)
        with pytest.raises(RuntimeError):
            await poller.run_cycle(target)
        assert store.get(target.key) == window[3].id

    @pytest.mark.asyncio
    async def test_cursor_write_failure_propagates_after_delivery(self, target, window, notifier):
        poller = _make_poller(FakeSource(window), FailingStore(), notifier)
        with pytest.raises(CursorWriteError):
            await poller.run_cycle(target)
        assert len(notifier.embeds) == 1

    @pytest.mark.asyncio
    async def test_anomaly_reported(self, target, window, store, notifier):
        store.set(target.key, "e" * 40)
        poller = _make_poller(FakeSource(window), store, notifier)
        result = await poller.run_cycle(target)
        assert result.anomaly is True
        assert result.delivered == 1
        assert store.get(target.key) == window[0].id

    @pytest.mark.asyncio
    async def test_branch_label(self, target, window, store, notifier):
        poller = _make_poller(FakeSource(window), store, notifier)
        poller.remember_branch(target.key, "main")
        await poller.run_cycle(target)
        assert notifier.embeds[0][1].fields[0].value == "`main`"


class TestOversizedCommits:
    @pytest.mark.asyncio
    async def test_long_file_list_delivered_as_embed(self, target, window, store):
        store.set(target.key, window[2].id)
        paths = [f"src/{i:02d}/" + "x" * 96 for i in range(12)]
        details = {window[1].id: CommitDetails(added=paths)}
        channel = StrictChannel()
        poller = _make_poller(FakeSource(window, details=details), store, _discord_notifier(channel))

        result = await poller.run_cycle(target)

        assert result.delivered == 2
        assert len(channel.embeds) == 2
        assert store.get(target.key) == window[0].id

    @pytest.mark.asyncio
    async def test_rejected_embed_does_not_stall_repo(self, target, window, store):
        store.set(target.key, window[2].id)
        channel = StrictChannel(reject_all_embeds=True)
        scheduler = PollScheduler([target], _make_poller(FakeSource(window), store, _discord_notifier(channel)))

        result = await scheduler.run_once(target)

        assert result.success is True
        assert result.delivered == 2
        assert len(channel.texts) == 2
        assert store.get(target.key) == window[0].id


class TestCursorProgress:
    @pytest.mark.asyncio
    async def test_timed_out_cycle_keeps_delivered_progress(self, target, window, store):
        store.set(target.key, window[3].id)  # new: c3, c4, c5
        notifier = StallingNotifier()
        scheduler = PollScheduler([target], _make_poller(FakeSource(window), store, notifier), cycle_timeout=0.05)

        result = await scheduler.run_once(target)

        assert result.error == "cycle timed out"
        assert [p.description for _, p in notifier.embeds] == ["commit 3"]
        assert store.get(target.key) == window[2].id


class TestHistoryFallback:
    @pytest.mark.asyncio
    async def test_recovers_cursor_from_channel(self, target, window, store, notifier):
        notifier.history_ref = window[2].short_id
        poller = _make_poller(FakeSource(window), store, notifier, history_fallback=True)
        result = await poller.run_cycle(target)
        assert [p.description for _, p in notifier.embeds] == ["commit 4", "commit 5"]
        assert result.cursor == window[0].id

    @pytest.mark.asyncio
    async def test_disabled_by_default(self, target, window, store, notifier):
        notifier.history_ref = window[2].short_id
        poller = _make_poller(FakeSource(window), store, notifier)
        await poller.run_cycle(target)
        assert len(notifier.embeds) == 1

    @pytest.mark.asyncio
    async def test_store_wins_over_history(self, target, window, store, notifier):
        store.set(target.key, window[1].id)
        notifier.history_ref = window[4].short_id
        poller = _make_poller(FakeSource(window), store, notifier, history_fallback=True)
        await poller.run_cycle(target)
        assert [p.description for _, p in notifier.embeds] == ["commit 5"]

    @pytest.mark.asyncio
    async def test_unresolvable_reference_seeds(self, target, window, store, notifier):
        notifier.history_ref = "0000000"
        poller = _make_poller(FakeSource(window), store, notifier, history_fallback=True)
        await poller.run_cycle(target)
        assert [p.description for _, p in notifier.embeds] == ["commit 5"]


# ---------------------------------------------------------------------------
# PollScheduler
# ---------------------------------------------------------------------------

class StubPoller:
    """run_cycle replacement with controllable behaviour."""

    def __init__(self, error=None, delay=0.0):
        self.error = error
        self.delay = delay
        self.calls = []

    async def run_cycle(self, target):
        self.calls.append(target.key)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return CycleResult(repo_key=target.key, success=True, delivered=1)


class TestPollScheduler:
    def test_stagger(self, target):
        scheduler = PollScheduler([target], StubPoller(), initial_delay_seconds=5, stagger_seconds=10)
        assert [scheduler.first_delay(i) for i in range(3)] == [5, 15, 25]

    @pytest.mark.asyncio
    async def test_failure_contained(self, target):
        scheduler = PollScheduler([target], StubPoller(error=GitHubAPIError("HTTP 500", status_code=500)))
        result = await scheduler.run_once(target)
        assert result.success is False
        assert "GitHubAPIError" in result.error
        assert scheduler.status()[target.key] is result

    @pytest.mark.asyncio
    async def test_rate_limit_reported(self, target):
        error = GitHubAPIError("rate limited", status_code=403, rate_limit_reset=1736935800)
        scheduler = PollScheduler([target], StubPoller(error=error))
        with patch("commit_relay.domain.poller._log") as log:
            result = await scheduler.run_once(target)
        assert result.success is False
        assert "resets at 1736935800" in log.call_args.args[0]

    @pytest.mark.asyncio
    async def test_overlapping_cycle_skipped(self, target):
        poller = StubPoller(delay=0.05)
        scheduler = PollScheduler([target], poller)
        first, second = await asyncio.gather(scheduler.run_once(target), scheduler.run_once(target))
        assert first.skipped is False and first.delivered == 1
        assert second.skipped is True
        assert poller.calls == [target.key]

    @pytest.mark.asyncio
    async def test_other_repo_not_blocked(self, target):
        other = RepositoryTarget(owner="acme", name="gadgets", channel_id=1)
        poller = StubPoller(delay=0.05)
        scheduler = PollScheduler([target, other], poller)
        results = await asyncio.gather(scheduler.run_once(target), scheduler.run_once(other))
        assert all(not r.skipped for r in results)
        assert sorted(poller.calls) == ["acme/gadgets", "acme/widgets"]

    @pytest.mark.asyncio
    async def test_guard_released_after_failure(self, target):
        poller = StubPoller(error=RuntimeError("boom"))
        scheduler = PollScheduler([target], poller)
        await scheduler.run_once(target)
        poller.error = None
        result = await scheduler.run_once(target)
        assert result.success is True

    @pytest.mark.asyncio
    async def test_cycle_timeout(self, target):
        scheduler = PollScheduler([target], StubPoller(delay=1.0), cycle_timeout=0.01)
        result = await scheduler.run_once(target)
        assert result.success is False
        assert result.error == "cycle timed out"

    @pytest.mark.asyncio
    async def test_timer_keeps_firing_after_failures(self, target):
        other = RepositoryTarget(owner="acme", name="gadgets", channel_id=1)
        poller = StubPoller(error=RuntimeError("boom"))
        scheduler = PollScheduler(
            [target, other], poller,
            interval_seconds=0.02, initial_delay_seconds=0, stagger_seconds=0.01,
        )
        scheduler.start()
        assert scheduler.running is True
        await asyncio.sleep(0.15)
        await scheduler.stop()
        assert poller.calls.count(target.key) >= 3
        assert poller.calls.count(other.key) >= 3
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, target):
        scheduler = PollScheduler([target], StubPoller(), initial_delay_seconds=10)
        scheduler.start()
        timers = dict(scheduler._timers)
        scheduler.start()
        assert scheduler._timers == timers
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_initial_delay_respected(self, target):
        poller = StubPoller()
        scheduler = PollScheduler([target], poller, initial_delay_seconds=10)
        with patch("commit_relay.domain.poller._log"):
            scheduler.start()
            await asyncio.sleep(0.02)
            await scheduler.stop()
        assert poller.calls == []

    def test_status_before_first_cycle(self, target):
        scheduler = PollScheduler([target], StubPoller())
        assert scheduler.status() == {target.key: None}
