"""Push webhook and status routes."""

import hashlib
import hmac
import sys

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from commit_relay.adapters.web.schemas import (
    CursorStatus,
    CycleStatus,
    PushEvent,
    RepoStatus,
    StatusResponse,
    WebhookResponse,
)
from commit_relay.domain.formatter import create_push_embed, create_simple_commit_message

relay_router = APIRouter(tags=["relay"])


def _log(msg: str):
    print(msg, file=sys.stderr)


def verify_signature(secret: str, body: bytes, signature_header: str) -> bool:
    """Check GitHub's ``X-Hub-Signature-256`` header against ``body``."""
    expected = "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode(), (signature_header or "").encode())


@relay_router.post("/webhook", response_model=WebhookResponse)
async def webhook(request: Request):
    """Relay a GitHub push event to the repository's channel.

    Push deliveries do not move the polling cursor.
    """
    services = request.app.state.relay
    raw_body = await request.body()

    secret = services.config.github.webhook_secret
    if secret and not verify_signature(secret, raw_body, request.headers.get("X-Hub-Signature-256", "")):
        _log("[webhook] signature mismatch, rejecting delivery")
        raise HTTPException(status_code=403, detail="Invalid signature")

    event_type = request.headers.get("X-GitHub-Event", "push")
    if event_type != "push":
        return WebhookResponse(delivered=False, error=f"ignored {event_type} event")

    try:
        event = PushEvent.model_validate_json(raw_body)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid push payload: {e}")

    full_name = event.repository.full_name or event.repository.name
    target = services.find_target(full_name)
    if target is None:
        raise HTTPException(status_code=404, detail=f"Repository not watched: {full_name}")

    commits = [c.to_commit() for c in event.commits]
    if not commits:
        return WebhookResponse(delivered=False)

    if services.notifier is None:
        raise HTTPException(status_code=503, detail="Discord delivery not configured")

    payload = create_push_embed(commits, target, branch=event.branch)
    if payload is not None:
        result = await services.notifier.send_embed(target.channel_id, payload)
        if not result.success and result.retry_as_text:
            result = await services.notifier.send_text(
                target.channel_id, create_simple_commit_message(commits[-1], target)
            )
    else:
        result = await services.notifier.send_text(
            target.channel_id, create_simple_commit_message(None, target)
        )

    if not result.success:
        _log(f"[webhook:{target.key}] channel {target.channel_id} unavailable: {result.error}")
    return WebhookResponse(delivered=result.success, commits=len(commits), error=result.error)


@relay_router.get("/status", response_model=StatusResponse)
async def status(request: Request):
    services = request.app.state.relay
    results = services.scheduler.status()
    repos = []
    for target in services.scheduler.targets:
        cursor = services.store.get_info(target.key)
        result = results.get(target.key)
        repos.append(
            RepoStatus(
                repo=target.key,
                display_name=target.label,
                channel_id=target.channel_id,
                cursor=CursorStatus(
                    last_commit_id=cursor.last_commit_id,
                    last_updated=cursor.last_updated,
                    metadata=cursor.metadata,
                ) if cursor else None,
                last_cycle=CycleStatus(
                    success=result.success,
                    skipped=result.skipped,
                    detected=result.detected,
                    delivered=result.delivered,
                    anomaly=result.anomaly,
                    error=result.error,
                    finished_at=result.finished_at,
                ) if result else None,
            )
        )
    return StatusResponse(scheduler_running=services.scheduler.running, repos=repos)
