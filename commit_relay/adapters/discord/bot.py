"""Discord client for the commit relay."""

import sys
from typing import Optional

import discord

from commit_relay.domain.poller import PollScheduler
from commit_relay.ports.outbound import CursorStorePort


def _log(msg: str):
    print(msg, file=sys.stderr)


class CommitRelayBot(discord.Client):
    """Connects to the gateway and starts the poll scheduler once ready.

    Handles:
    - ``hello``: liveness reply
    - ``!commits``: cursor and last cycle status per watched repository
    - ``!reset owner/name``: forget a repository's cursor; the next cycle
      re-seeds it with the newest commit
    """

    def __init__(
        self,
        scheduler: Optional[PollScheduler] = None,
        store: Optional[CursorStorePort] = None,
        **discord_kwargs,
    ):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(intents=intents, **discord_kwargs)
        self.scheduler = scheduler
        self._store = store

    async def on_ready(self):
        _log(f"[bot] logged in as {self.user}")
        for guild in self.guilds:
            _log(f"[bot]  - {guild.name} ({guild.id})")
            for channel in guild.text_channels:
                _log(f"[bot]    #{channel.name} ({channel.id})")
        # on_ready fires again after reconnects; start() ignores repeat calls
        if self.scheduler:
            self.scheduler.start()

    async def on_message(self, message: discord.Message):
        if message.author.bot:
            return
        content = message.content.strip().lower()
        if content == "hello":
            await message.channel.send("Hello, World!")
        elif content == "!commits":
            await message.channel.send(self.status_report())
        elif content.startswith("!reset"):
            await message.channel.send(self.reset_cursor(content[len("!reset"):].strip()))

    def status_report(self) -> str:
        if not self.scheduler or not self.scheduler.targets:
            return "No repositories are being watched."
        results = self.scheduler.status()
        lines = [f"**Watching {len(results)} repo(s)**"]
        for target in self.scheduler.targets:
            cursor = self._store.get_info(target.key) if self._store else None
            result = results.get(target.key)
            if cursor:
                seen = f"`{cursor.last_commit_id[:7]}` {cursor.metadata.get('message', '')[:60]}"
            else:
                seen = "nothing yet"
            if result is None:
                state = "not polled yet"
            elif result.success:
                state = f"ok, {result.delivered} delivered"
            else:
                state = f"failed: {result.error}"
            lines.append(f"- **{target.label}** ({target.key}) last: {seen} | {state}")
        return "\n".join(lines)

    def reset_cursor(self, repo: str) -> str:
        if not self.scheduler or not self._store:
            return "No repositories are being watched."
        target = next((t for t in self.scheduler.targets if t.key.lower() == repo), None)
        if target is None:
            return f"Not watching `{repo or '?'}`. Usage: `!reset owner/name`"
        if self._store.reset(target.key):
            _log(f"[bot] cursor reset for {target.key}")
            return f"Cursor for **{target.label}** cleared; the next poll starts from the latest commit."
        return f"No cursor stored for **{target.label}**."
