"""
Driver notification endpoint
============================

POST /api/notify-drivers-new-job -- text opted-in drivers about a new job

Responses
---------
* 200 ``{"ok": true, "sent": n, "failed": m}`` -- fan-out attempted
* 200 ``{"message": "No drivers with SMS enabled"}`` -- nobody to text
* 500 ``{"error": ..., <has* flags>}`` -- store or Twilio misconfigured
* 500 ``{"error": ...}`` -- recipient query or unexpected failure

An unreadable body is not an error: the text falls back to ``N/A``.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db
from src.api.middleware import limiter
from src.config import settings
from src.workers import notifier

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


async def _job_text(request: Request) -> tuple[Optional[str], Optional[str]]:
    try:
        body = await request.json()
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None
    return body.get("pickup") or None, body.get("dropoff") or None


@router.post("/notify-drivers-new-job", summary="Text drivers about a new job")
@limiter.limit("30/minute")
async def notify_drivers_new_job(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    if not settings.database_url:
        logger.error("Database config missing")
        return JSONResponse(
            {"error": "Missing database configuration", "hasUrl": False},
            status_code=500,
        )

    try:
        gateway = notifier.sms_gateway()
    except notifier.NotificationConfigError as exc:
        logger.error("Twilio config missing %s", exc.diagnostics)
        return JSONResponse({"error": str(exc), **exc.diagnostics}, status_code=500)

    pickup, dropoff = await _job_text(request)

    try:
        result = await notifier.notify_drivers_sms(db, pickup, dropoff, gateway=gateway)
    except SQLAlchemyError:
        logger.exception("Error fetching SMS recipients")
        return JSONResponse({"error": "Failed to fetch drivers"}, status_code=500)
    except Exception:
        logger.exception("Error in notify-drivers-new-job route")
        return JSONResponse({"error": "Internal error sending SMS"}, status_code=500)

    if result.recipients == 0:
        return JSONResponse({"message": "No drivers with SMS enabled"}, status_code=200)
    return {"ok": True, "sent": result.sent, "failed": result.failed}
