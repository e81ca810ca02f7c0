"""Tests for the new-job notification fan-out (SMS + push)."""

from __future__ import annotations

import json
from urllib.parse import parse_qs
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from src.config import settings
from src.infrastructure.gateways import ExpoPushGateway, TwilioSmsGateway
from src.infrastructure.models import UserModel
from src.workers import notifier
from src.workers.notifier import NewJobNotice, NotificationConfigError
from tests.conftest import DISPATCHER


@pytest.fixture
def twilio_configured(monkeypatch):
    monkeypatch.setattr(settings, "twilio_account_sid", "AC123")
    monkeypatch.setattr(settings, "twilio_auth_token", "secret")
    monkeypatch.setattr(settings, "twilio_from_number", "+15550000000")


class TestMessages:
    def test_sms_text(self):
        assert notifier.sms_text("Gate 4", "Hotel Bay") == (
            "New MinuteRide job:\nPickup: Gate 4\nDropoff: Hotel Bay\nLog in now to claim it."
        )

    def test_sms_text_falls_back_to_na(self):
        text = notifier.sms_text(None, "")
        assert "Pickup: N/A" in text
        assert "Dropoff: N/A" in text

    def test_push_message_carries_job_id(self):
        msg = notifier.push_message("ExponentPushToken[x]", "job-1", "Gate 4", "Hotel Bay")
        assert msg["to"] == "ExponentPushToken[x]"
        assert msg["sound"] == "default"
        assert msg["body"] == "Gate 4 → Hotel Bay"
        assert msg["data"] == {"jobId": "job-1"}


class TestConfiguration:
    def test_missing_twilio_settings_are_named(self, monkeypatch):
        monkeypatch.setattr(settings, "twilio_account_sid", None)
        monkeypatch.setattr(settings, "twilio_auth_token", "secret")
        monkeypatch.setattr(settings, "twilio_from_number", None)

        with pytest.raises(NotificationConfigError, match="Missing Twilio configuration") as exc:
            notifier.sms_gateway()
        assert exc.value.diagnostics == {"hasSid": False, "hasToken": True, "hasFrom": False}

    @pytest.mark.asyncio
    async def test_misconfigured_sms_raises_before_querying(self, db_session, monkeypatch):
        monkeypatch.setattr(settings, "twilio_account_sid", None)
        with pytest.raises(NotificationConfigError):
            await notifier.notify_drivers_sms(db_session, "Gate 4", "Hotel Bay")


class TestSmsFanout:
    @pytest.mark.asyncio
    async def test_every_opted_in_driver_is_texted(self, db_session):
        gateway = AsyncMock()

        result = await notifier.notify_drivers_sms(db_session, "Gate 4", "Hotel Bay", gateway)

        assert result.recipients == 2
        assert result.sent == 2
        phones = sorted(call.args[0] for call in gateway.send.await_args_list)
        assert phones == ["+15555550101", "+15555550102"]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_rest(self, db_session):
        async def send(phone, body):
            if phone == "+15555550102":
                raise httpx.ConnectError("unreachable")
            return {"sid": "SM1"}

        gateway = AsyncMock()
        gateway.send = AsyncMock(side_effect=send)

        result = await notifier.notify_drivers_sms(db_session, "Gate 4", "Hotel Bay", gateway)

        assert (result.recipients, result.sent, result.failed) == (2, 1, 1)

    @pytest.mark.asyncio
    async def test_opted_in_dispatcher_is_not_texted(self, db_session):
        await db_session.execute(
            update(UserModel)
            .where(UserModel.id == DISPATCHER.id)
            .values(phone_number="+15559999999", sms_notifications_enabled=True)
        )
        await db_session.commit()
        gateway = AsyncMock()

        result = await notifier.notify_drivers_sms(db_session, "Gate 4", "Hotel Bay", gateway)

        assert result.recipients == 2
        phones = {call.args[0] for call in gateway.send.await_args_list}
        assert "+15559999999" not in phones

    @pytest.mark.asyncio
    async def test_no_opted_in_drivers(self, db_session):
        await db_session.execute(update(UserModel).values(sms_notifications_enabled=False))
        await db_session.commit()
        gateway = AsyncMock()

        result = await notifier.notify_drivers_sms(db_session, "Gate 4", "Hotel Bay", gateway)

        assert result.recipients == 0
        gateway.send.assert_not_awaited()


class TestPushFanout:
    @pytest.mark.asyncio
    async def test_push_goes_to_registered_tokens(self, db_session):
        gateway = AsyncMock()
        notice = NewJobNotice(job_id="job-1", pickup="Gate 4", dropoff="Hotel Bay")

        result = await notifier.notify_drivers_push(db_session, notice, gateway)

        assert result.sent == 1
        message = gateway.send.await_args.args[0]
        assert message["to"] == "ExponentPushToken[x]"
        assert message["data"] == {"jobId": "job-1"}


class TestGateways:
    @pytest.mark.asyncio
    async def test_twilio_request_shape(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"sid": "SM1"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            gateway = TwilioSmsGateway(client, "AC123", "secret", "+15550000000")
            await gateway.send("+15555550101", "hello")

        request = seen[0]
        assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        assert request.headers["authorization"].startswith("Basic ")
        form = parse_qs(request.content.decode())
        assert form == {"To": ["+15555550101"], "From": ["+15550000000"], "Body": ["hello"]}

    @pytest.mark.asyncio
    async def test_http_error_is_raised(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"message": "invalid number"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            gateway = ExpoPushGateway(client, "https://exp.host/--/api/v2/push/send")
            with pytest.raises(httpx.HTTPStatusError):
                await gateway.send({"to": "ExponentPushToken[x]"})


class TestBackgroundNotifications:
    @pytest.mark.asyncio
    async def test_stop_waits_for_scheduled_fanout(
        self, session_factory, twilio_configured, monkeypatch
    ):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": []})

        monkeypatch.setattr(notifier, "async_session_factory", session_factory)
        monkeypatch.setattr(
            notifier, "_client", httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

        notifier.schedule_new_job_notifications(
            NewJobNotice(job_id="job-1", pickup="Gate 4", dropoff="Hotel Bay")
        )
        await notifier.stop_notifier()

        hosts = sorted(r.url.host for r in seen)
        assert hosts == ["api.twilio.com", "api.twilio.com", "exp.host"]
        push = next(r for r in seen if r.url.host == "exp.host")
        assert json.loads(push.content)[0]["data"] == {"jobId": "job-1"}
        assert not notifier._pending

    @pytest.mark.asyncio
    async def test_background_failure_is_contained(self, session_factory, monkeypatch):
        monkeypatch.setattr(settings, "twilio_account_sid", None)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        monkeypatch.setattr(notifier, "async_session_factory", session_factory)
        monkeypatch.setattr(
            notifier, "_client", httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

        notifier.schedule_new_job_notifications(NewJobNotice(job_id="job-1"))
        await notifier.stop_notifier()

        assert not notifier._pending

    @pytest.mark.asyncio
    async def test_push_runs_in_its_own_session_after_sms_failure(
        self, session_factory, monkeypatch
    ):
        sessions = {}

        async def failing_sms(session, pickup, dropoff):
            sessions["sms"] = session
            raise SQLAlchemyError("recipient query failed")

        async def push(session, notice):
            sessions["push"] = session

        monkeypatch.setattr(notifier, "async_session_factory", session_factory)
        monkeypatch.setattr(notifier, "notify_drivers_sms", failing_sms)
        monkeypatch.setattr(notifier, "notify_drivers_push", push)

        notifier.schedule_new_job_notifications(NewJobNotice(job_id="job-1"))
        await notifier.stop_notifier()

        assert set(sessions) == {"sms", "push"}
        assert sessions["sms"] is not sessions["push"]
