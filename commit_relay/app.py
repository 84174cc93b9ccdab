"""FastAPI application, service wiring, and startup."""

import asyncio
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

from fastapi import FastAPI

from commit_relay.adapters.discord.bot import CommitRelayBot
from commit_relay.adapters.discord.notifier import DiscordNotificationAdapter
from commit_relay.adapters.github.client import GitHubClient
from commit_relay.adapters.storage.json_store import JsonCursorStore
from commit_relay.adapters.web.routes import relay_router
from commit_relay.config import AppConfig
from commit_relay.domain.detector import ChangeDetector
from commit_relay.domain.enricher import DetailEnricher
from commit_relay.domain.models import RepositoryTarget
from commit_relay.domain.poller import CommitPoller, PollScheduler
from commit_relay.ports.outbound import NotificationPort


def _log(msg: str):
    print(msg, file=sys.stderr)


@dataclass
class RelayServices:
    """Handles shared by the scheduler, the bot and the HTTP routes."""

    config: AppConfig
    github: GitHubClient
    store: JsonCursorStore
    poller: Optional[CommitPoller]
    scheduler: PollScheduler
    bot: Optional[CommitRelayBot] = None
    notifier: Optional[NotificationPort] = None

    @property
    def targets(self) -> List[RepositoryTarget]:
        return self.config.targets

    def find_target(self, full_name: str) -> Optional[RepositoryTarget]:
        wanted = full_name.lower()
        for target in self.config.targets:
            if target.key.lower() == wanted or target.name.lower() == wanted:
                return target
        return None


def build_services(config: AppConfig) -> RelayServices:
    """Construct every handle once; nothing below reaches for globals."""
    github = GitHubClient(
        token=config.github.token,
        user_agent=config.github.user_agent,
        timeout=config.github.request_timeout,
    )
    store = JsonCursorStore(config.state_dir)

    bot: Optional[CommitRelayBot] = None
    notifier: Optional[NotificationPort] = None
    poller: Optional[CommitPoller] = None
    if config.discord.token:
        bot = CommitRelayBot(store=store)
        notifier = DiscordNotificationAdapter(bot)
        poller = CommitPoller(
            detector=ChangeDetector(github, window_size=config.github.window_size),
            enricher=DetailEnricher(github),
            store=store,
            notifier=notifier,
            history_fallback=config.polling.history_fallback,
        )

    scheduler = PollScheduler(
        config.targets if poller else [],
        poller,
        interval_seconds=config.polling.interval_seconds,
        initial_delay_seconds=config.polling.initial_delay_seconds,
        stagger_seconds=config.polling.stagger_seconds,
        cycle_timeout=config.polling.cycle_timeout,
    )
    if bot:
        bot.scheduler = scheduler
    return RelayServices(
        config=config,
        github=github,
        store=store,
        poller=poller,
        scheduler=scheduler,
        bot=bot,
        notifier=notifier,
    )


async def _prime_branches(services: RelayServices) -> None:
    if services.poller is None:
        return
    for target in services.targets:
        info = await services.github.get_repository_info(target)
        services.poller.remember_branch(target.key, info.default_branch)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services: RelayServices = app.state.relay
    _log("Commit relay starting")
    _log(f"Watching: {', '.join(t.key for t in services.targets) or 'nothing (set WATCH_REPOS)'}")
    if not services.github.is_authenticated:
        _log("GITHUB_TOKEN not set, using unauthenticated GitHub API (60 requests/hour)")

    bot_task: Optional[asyncio.Task] = None
    if services.bot:
        await _prime_branches(services)
        _log("Starting Discord bot...")

        async def _start_discord():
            try:
                await services.bot.start(services.config.discord.token)
            except Exception as e:
                _log(f"Discord bot failed to start: {e}")

        bot_task = asyncio.create_task(_start_discord())
    else:
        _log("Discord bot not configured (set DISCORD_TOKEN in .env)")

    _log("Ready!")
    try:
        yield
    finally:
        await services.scheduler.stop()
        if services.bot and not services.bot.is_closed():
            await services.bot.close()
        if bot_task:
            await asyncio.gather(bot_task, return_exceptions=True)
        await services.github.close()


def create_app(services: Optional[RelayServices] = None) -> FastAPI:
    if services is None:
        services = build_services(AppConfig.from_env())
    app = FastAPI(title="Commit Relay", lifespan=lifespan)
    app.state.relay = services
    app.include_router(relay_router)
    return app
