"""Discord delivery: NotificationPort implementation using discord.Client."""

import re
import sys
from datetime import datetime
from typing import Optional

import discord

from commit_relay.domain.formatter import parse_footer_commit_id
from commit_relay.domain.models import NotificationPayload
from commit_relay.ports.outbound import DeliveryResult

MESSAGE_LIMIT = 2000
HISTORY_SCAN_LIMIT = 50

_COMMIT_URL_RE = re.compile(r"/commit/([0-9a-fA-F]{7,40})\b")


def _log(msg: str):
    print(msg, file=sys.stderr)


def _is_rejection(error: discord.HTTPException) -> bool:
    """A 4xx other than 429: resending the same request cannot succeed."""
    return 400 <= error.status < 500 and error.status != 429


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None


def to_discord_embed(payload: NotificationPayload) -> discord.Embed:
    """Convert a platform-neutral payload into a discord.Embed."""
    embed = discord.Embed(
        title=payload.title,
        url=payload.url,
        description=payload.description,
        color=payload.color,
        timestamp=_parse_timestamp(payload.timestamp),
    )
    if payload.author:
        embed.set_author(name=payload.author.name, icon_url=payload.author.icon_url)
    for f in payload.fields:
        embed.add_field(name=f.name, value=f.value, inline=f.inline)
    embed.set_footer(text=payload.footer)
    return embed


def commit_ref_from_embed(embed: discord.Embed) -> Optional[str]:
    """Commit id carried by a delivered embed: full id from the URL, else the footer's short id."""
    if embed.url:
        m = _COMMIT_URL_RE.search(str(embed.url))
        if m:
            return m.group(1).lower()
    footer = embed.footer.text if embed.footer else None
    return parse_footer_commit_id(footer or "")


class DiscordNotificationAdapter:
    """Sends notifications through an already-connected discord.Client."""

    def __init__(self, client: discord.Client):
        self._client = client

    async def send_embed(self, channel_id: int, payload: NotificationPayload) -> DeliveryResult:
        channel = self._client.get_channel(channel_id)
        if channel is None:
            return DeliveryResult(success=False, error=f"channel {channel_id} not found")
        try:
            message = await channel.send(embed=to_discord_embed(payload))
        except discord.HTTPException as e:
            if not _is_rejection(e):
                raise
            _log(f"[discord] embed rejected in ch={channel_id}: {e}")
            return DeliveryResult(success=False, error=str(e), retry_as_text=True)
        return DeliveryResult(success=True, message_id=message.id)

    async def send_text(self, channel_id: int, text: str) -> DeliveryResult:
        channel = self._client.get_channel(channel_id)
        if channel is None:
            return DeliveryResult(success=False, error=f"channel {channel_id} not found")
        message = None
        try:
            # Split long messages
            while text:
                message = await channel.send(text[:MESSAGE_LIMIT])
                text = text[MESSAGE_LIMIT:]
        except discord.HTTPException as e:
            if not _is_rejection(e):
                raise
            _log(f"[discord] text rejected in ch={channel_id}: {e}")
            return DeliveryResult(success=False, error=str(e))
        return DeliveryResult(success=True, message_id=message.id if message else None)

    async def last_delivered_commit(self, channel_id: int) -> Optional[str]:
        """Commit reference from this bot's most recent embed in the channel."""
        channel = self._client.get_channel(channel_id)
        if channel is None or self._client.user is None:
            return None
        async for message in channel.history(limit=HISTORY_SCAN_LIMIT):
            if message.author.id != self._client.user.id or not message.embeds:
                continue
            return commit_ref_from_embed(message.embeds[0])
        return None
