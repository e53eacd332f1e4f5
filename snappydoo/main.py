import logging

from fastapi import FastAPI

from snappydoo.routes import webhooks

logging.basicConfig(level=logging.INFO, format="[snappydoo] %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Snappydoo Snapshot Screenshot Bot")
app.include_router(webhooks.router)


@app.get("/healthz")
async def healthz() -> dict:
    """Liveness probe for the webhook service."""
    return {"status": "ok"}
