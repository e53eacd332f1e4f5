from __future__ import annotations

import json
from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from snappydoo.services.bot import SnappydooBot, get_bot, verify_signature

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

BotDep = Depends(get_bot)


@router.post("/github")
async def github_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_github_event: Optional[str] = Header(default=None),
    x_hub_signature_256: Optional[str] = Header(default=None),
    bot: SnappydooBot = BotDep,
) -> JSONResponse:
    body = await request.body()
    if not verify_signature(bot.settings.webhook_secret, body, x_hub_signature_256):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")
    if not x_github_event:
        raise HTTPException(status_code=400, detail="Missing X-GitHub-Event header")
    if x_github_event == "ping":
        return JSONResponse({"status": "pong"})

    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Payload is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Payload must be a JSON object")

    try:
        match = bot.classify(x_github_event, payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=f"Unexpected {x_github_event} payload: {exc.error_count()} errors")
    if match is None:
        return JSONResponse({"status": "ignored"})

    workflow, event = match
    background_tasks.add_task(bot.process, workflow, event)
    content: Dict[str, str] = {"status": "accepted", "workflow": workflow}
    return JSONResponse(content, status_code=202)
