from __future__ import annotations

import asyncio
import logging

import aiohttp
import pytest

from conftest import (
    FakeClock,
    FakeSession,
    FakeSleep,
    MockResponse,
    html_response,
    json_response,
    make_client,
    queue_login,
)
from custom_components.totalcomfort.client import SessionState
from custom_components.totalcomfort.const import BASE_URL, LOCATIONS_PATH
from custom_components.totalcomfort.errors import (
    ApiRejected,
    AuthenticationFailed,
    CommunicationFailure,
    ErrorKind,
    MalformedResponse,
    NotAuthenticated,
    RateLimited,
    SessionExpired,
    UnexpectedResponse,
)


def test_login_success_records_session() -> None:
    async def _run() -> None:
        session = FakeSession()
        queue_login(session)
        client = make_client(session)

        await client.login()

        assert client.state is SessionState.AUTHENTICATED
        assert client.is_authenticated
        assert client.effective_url == BASE_URL
        assert client.last_auth is not None
        assert sorted(client.cookie_jar.names()) == [".ASPXAUTH_TRUEHOME", "SessionCookie"]

        methods = [call[0] for call in session.request_calls]
        assert methods == ["GET", "POST", "GET"]
        form = session.request_calls[1][2]["data"]
        assert form == {
            "UserName": "user@example.com",
            "Password": "secret",
            "RememberMe": "false",
            "timeOffset": "480",
        }
        # The primed cookie is echoed on the form post.
        assert "SessionCookie=s1" in session.request_calls[1][2]["headers"]["Cookie"]

    asyncio.run(_run())


def test_invalid_credentials_then_requests_are_refused(caplog) -> None:
    async def _run() -> None:
        session = FakeSession()
        session.queue(
            html_response(),
            html_response("<div>Invalid username or password</div>"),
        )
        client = make_client(session)

        with caplog.at_level(logging.DEBUG):
            with pytest.raises(AuthenticationFailed) as err:
                await client.login()

        assert err.value.kind is ErrorKind.AUTHENTICATION_FAILED
        assert client.state is SessionState.UNAUTHENTICATED
        with pytest.raises(NotAuthenticated):
            await client.get(LOCATIONS_PATH)
        assert len(session.request_calls) == 2
        assert "secret" not in caplog.text
        assert "user@example.com" not in caplog.text

    asyncio.run(_run())


def test_login_non_success_status_fails() -> None:
    async def _run() -> None:
        session = FakeSession()
        session.queue(html_response(), html_response(status=500))
        client = make_client(session)

        with pytest.raises(AuthenticationFailed):
            await client.login()
        assert client.state is SessionState.UNAUTHENTICATED

    asyncio.run(_run())


def test_login_failed_keepalive_is_authentication_failure() -> None:
    async def _run() -> None:
        session = FakeSession()
        session.queue(
            html_response(),
            html_response(url=BASE_URL),
            html_response(status=403),
        )
        client = make_client(session)

        with pytest.raises(AuthenticationFailed):
            await client.login()
        assert client.state is SessionState.UNAUTHENTICATED

    asyncio.run(_run())


def test_login_rate_limited_enters_cooldown() -> None:
    async def _run() -> None:
        clock = FakeClock()
        session = FakeSession()
        session.queue(html_response(status=429, headers={"Retry-After": "90"}))
        client = make_client(session, clock=clock)

        with pytest.raises(RateLimited) as err:
            await client.login()

        assert err.value.retry_after == 90
        assert client.state is SessionState.RATE_LIMITED
        with pytest.raises(RateLimited):
            await client.login()
        assert len(session.request_calls) == 1

        clock.advance(91)
        assert client.state is SessionState.UNAUTHENTICATED

    asyncio.run(_run())


def test_login_rate_limit_page_is_not_a_credentials_error() -> None:
    async def _run() -> None:
        session = FakeSession()
        session.queue(
            html_response(),
            html_response("<p>You are being rate-limited. Try waiting a bit.</p>"),
        )
        client = make_client(session)

        with pytest.raises(RateLimited) as err:
            await client.login()

        assert err.value.retry_after == 300
        assert client.state is SessionState.RATE_LIMITED
        assert len(session.request_calls) == 2

    asyncio.run(_run())


def test_keepalive_age_tracks_last_confirmation() -> None:
    async def _run() -> None:
        clock = FakeClock()
        session = FakeSession()
        client = make_client(session, clock=clock)
        assert client.keepalive_age == float("inf")

        queue_login(session)
        await client.login()
        clock.advance(45)
        assert client.keepalive_age == pytest.approx(45)

        session.queue(html_response(url=BASE_URL))
        await client.keepalive()
        assert client.keepalive_age == 0.0

        await client.close()
        assert client.keepalive_age == float("inf")

    asyncio.run(_run())


def test_ensure_authenticated_skips_when_logged_in() -> None:
    async def _run() -> None:
        session = FakeSession()
        queue_login(session)
        client = make_client(session)

        await client.ensure_authenticated()
        await client.ensure_authenticated()

        assert len(session.request_calls) == 3

    asyncio.run(_run())


def test_get_returns_payload_and_sends_cookies() -> None:
    async def _run() -> None:
        session = FakeSession()
        queue_login(session)
        client = make_client(session)
        await client.login()
        client.cookie_jar.ingest(
            {"Set-Cookie": ".ASPXAUTH_TRUEHOME_RT=refresh; Path=/"}, BASE_URL
        )
        session.queue(json_response({"success": True, "value": 1}))

        payload = await client.get("/Device/CheckDataSession/7")

        assert payload == {"success": True, "value": 1}
        method, url, kwargs = session.request_calls[-1]
        assert (method, url) == ("GET", f"{BASE_URL}/Device/CheckDataSession/7")
        assert "params" not in kwargs
        cookie = kwargs["headers"]["Cookie"]
        assert "SessionCookie=s1" in cookie
        assert "ASPXAUTH_TRUEHOME_RT" not in cookie
        assert kwargs["headers"]["Accept"].startswith("application/json")

    asyncio.run(_run())


def test_post_json_body_and_payload_without_marker() -> None:
    async def _run() -> None:
        session = FakeSession()
        queue_login(session)
        client = make_client(session)
        await client.login()
        session.queue(json_response([{"LocationID": 1}]))

        payload = await client.post(LOCATIONS_PATH, json_body={"a": 1})

        assert payload == [{"LocationID": 1}]
        assert session.request_calls[-1][2]["json"] == {"a": 1}
        assert "data" not in session.request_calls[-1][2]

    asyncio.run(_run())


def test_falsy_success_marker_is_api_rejected() -> None:
    async def _run() -> None:
        session = FakeSession()
        queue_login(session)
        client = make_client(session)
        await client.login()
        session.queue(json_response({"success": False}))

        with pytest.raises(ApiRejected):
            await client.get("/Device/CheckDataSession/7")
        assert client.state is SessionState.AUTHENTICATED
        assert session.pending == 0

    asyncio.run(_run())


def test_non_json_body_is_retried_then_malformed() -> None:
    async def _run() -> None:
        sleep = FakeSleep()
        session = FakeSession()
        queue_login(session)
        client = make_client(session, sleep=sleep)
        await client.login()
        session.queue(html_response(), html_response(), html_response())

        with pytest.raises(MalformedResponse):
            await client.get("/Device/CheckDataSession/7")

        assert sleep.calls == [1.0, 1.0]
        assert session.pending == 0
        assert client.state is SessionState.AUTHENTICATED

    asyncio.run(_run())


def test_transport_failure_is_retried_and_recovers() -> None:
    async def _run() -> None:
        sleep = FakeSleep()
        session = FakeSession()
        queue_login(session)
        client = make_client(session, sleep=sleep)
        await client.login()
        session.queue(
            aiohttp.ClientConnectionError("refused"),
            TimeoutError(),
            json_response({"success": True}),
        )

        payload = await client.get("/Device/CheckDataSession/7")

        assert payload == {"success": True}
        assert sleep.calls == [1.0, 1.0]

    asyncio.run(_run())


def test_transport_failure_after_all_attempts() -> None:
    async def _run() -> None:
        session = FakeSession()
        queue_login(session)
        client = make_client(session)
        await client.login()
        session.queue(*(aiohttp.ClientConnectionError("down") for _ in range(3)))

        with pytest.raises(CommunicationFailure) as err:
            await client.get("/Device/CheckDataSession/7")

        assert err.value.retryable
        assert client.state is SessionState.AUTHENTICATED

    asyncio.run(_run())


@pytest.mark.parametrize("status", [401, 403])
def test_request_auth_status_expires_session(status: int) -> None:
    async def _run() -> None:
        session = FakeSession()
        queue_login(session)
        client = make_client(session)
        await client.login()
        session.queue(html_response(status=status))

        with pytest.raises(SessionExpired):
            await client.get("/Device/CheckDataSession/7")

        assert client.state is SessionState.EXPIRED
        with pytest.raises(NotAuthenticated):
            await client.get("/Device/CheckDataSession/7")

    asyncio.run(_run())


def test_stale_auth_failure_does_not_demote_renewed_session() -> None:
    async def _run() -> None:
        session = FakeSession()
        queue_login(session)
        client = make_client(session)
        await client.login()

        def _renewed_then_401() -> MockResponse:
            # A login completed while this request was in flight.
            client._generation += 1
            return html_response(status=401)

        session.queue(_renewed_then_401)

        with pytest.raises(SessionExpired):
            await client.get("/Device/CheckDataSession/7")

        assert client.state is SessionState.AUTHENTICATED

    asyncio.run(_run())


def test_rate_limit_status_uses_retry_after() -> None:
    async def _run() -> None:
        clock = FakeClock()
        session = FakeSession()
        queue_login(session)
        client = make_client(session, clock=clock)
        await client.login()
        session.queue(json_response({}, status=429, headers={"Retry-After": "120"}))

        with pytest.raises(RateLimited) as err:
            await client.get(LOCATIONS_PATH)

        assert err.value.retry_after == 120
        assert client.state is SessionState.RATE_LIMITED
        assert client.rate_limit_remaining == pytest.approx(120)
        with pytest.raises(RateLimited):
            await client.get(LOCATIONS_PATH)

        clock.advance(121)
        assert client.state is SessionState.AUTHENTICATED
        assert client.rate_limit_remaining == 0.0

    asyncio.run(_run())


def test_rate_limit_marker_in_body_defaults_to_five_minutes() -> None:
    async def _run() -> None:
        session = FakeSession()
        queue_login(session)
        client = make_client(session)
        await client.login()
        session.queue(html_response("You are being rate-limited. Try waiting a bit."))

        with pytest.raises(RateLimited) as err:
            await client.get(LOCATIONS_PATH)

        assert err.value.retry_after == 300
        assert client.state is SessionState.RATE_LIMITED

    asyncio.run(_run())


def test_unexpected_status_is_not_retried() -> None:
    async def _run() -> None:
        sleep = FakeSleep()
        session = FakeSession()
        queue_login(session)
        client = make_client(session, sleep=sleep)
        await client.login()
        session.queue(html_response("boom password=hunter2", status=500))

        with pytest.raises(UnexpectedResponse) as err:
            await client.get(LOCATIONS_PATH)

        assert err.value.status == 500
        assert sleep.calls == []

    asyncio.run(_run())


def test_keepalive_statuses() -> None:
    async def _run() -> None:
        session = FakeSession()
        queue_login(session)
        client = make_client(session)
        await client.login()

        session.queue(html_response(url=BASE_URL))
        await client.keepalive()
        assert client.state is SessionState.AUTHENTICATED

        session.queue(html_response(status=401))
        with pytest.raises(SessionExpired):
            await client.keepalive()
        assert client.state is SessionState.UNAUTHENTICATED

        queue_login(session)
        await client.login()
        session.queue(html_response(status=403))
        with pytest.raises(SessionExpired):
            await client.keepalive()
        assert client.state is SessionState.EXPIRED

    asyncio.run(_run())


def test_set_cookie_from_redirect_history_is_kept() -> None:
    async def _run() -> None:
        session = FakeSession()
        queue_login(session)
        client = make_client(session)
        await client.login()
        hop = MockResponse(302, headers={"Set-Cookie": "Hop=1; Path=/"}, url=BASE_URL)
        final = json_response({"success": True})
        final.history = (hop,)
        session.queue(final)

        await client.get(LOCATIONS_PATH)

        assert "Hop" in client.cookie_jar

    asyncio.run(_run())


def test_close_is_idempotent_and_keeps_injected_session() -> None:
    async def _run() -> None:
        session = FakeSession()
        queue_login(session)
        client = make_client(session)
        await client.login()

        await client.close()
        await client.close()

        assert client.state is SessionState.UNAUTHENTICATED
        assert len(client.cookie_jar) == 0
        assert session.closed is False

    asyncio.run(_run())


def test_close_owned_session(monkeypatch) -> None:
    created: list[FakeSession] = []

    def _factory(*args, **kwargs) -> FakeSession:
        assert isinstance(kwargs["cookie_jar"], aiohttp.DummyCookieJar)
        session = FakeSession()
        queue_login(session)
        created.append(session)
        return session

    async def _run() -> None:
        monkeypatch.setattr(aiohttp, "ClientSession", _factory)
        client = make_client(None)
        await client.login()
        await client.close()
        await client.close()

        assert len(created) == 1
        assert created[0].closed is True

    asyncio.run(_run())
