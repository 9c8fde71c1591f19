# tests/test_api_security.py
"""
Tests for the with_api_security wrapper.

Uses a throwaway FastAPI app whose routes wrap small handlers, so every
stage of the wrapper (CSRF, rate limit, handler, error sanitization) can be
observed in isolation.
"""

import os
import pytest
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, Mock, patch

from roofguard.core.error_messages import GENERIC_ERROR_MESSAGES
from roofguard.core.rate_limit_config import RateLimitConfig
from roofguard.core.security import generate_csrf_token, with_api_security
from roofguard.core.security.csrf import CSRF_ERROR_MESSAGE, CsrfGuard

POLICY = RateLimitConfig(max_requests=2, window_seconds=60, prefix="wrapped")


class Recorder:
    """Handler that records its calls"""

    def __init__(self, response=None, error=None):
        self.calls = []
        self.response = response
        self.error = error

    async def __call__(self, request: Request, user_id):
        self.calls.append(user_id)
        if self.error is not None:
            raise self.error
        return self.response or JSONResponse(content={"ok": True})


@pytest.fixture
def wrapped_app(limiter):
    app = FastAPI()
    app.state.rate_limiter = limiter
    app.state.handler = Recorder()

    @app.post("/protected")
    async def protected(request: Request):
        return await with_api_security(request, POLICY, app.state.handler, user_id=request.headers.get("x-user"))

    @app.get("/read")
    async def read(request: Request):
        return await with_api_security(request, POLICY, app.state.handler)

    @app.post("/public")
    async def public(request: Request):
        return await with_api_security(request, POLICY, app.state.handler, skip_csrf=True)

    @app.post("/unlimited")
    async def unlimited(request: Request):
        return await with_api_security(request, None, app.state.handler, skip_csrf=True)

    return app


@pytest.fixture
def api(wrapped_app):
    return TestClient(wrapped_app)


def csrf_headers(api):
    """Set a CSRF cookie on the client and return the matching header"""
    token = generate_csrf_token()
    api.cookies.set("csrf-token", token)
    return {"x-csrf-token": token}


class TestCsrfStage:
    """Test CSRF enforcement in the wrapper"""

    def test_post_without_token_rejected(self, api, wrapped_app):
        response = api.post("/protected")

        assert response.status_code == 403
        assert response.json() == {"error": CSRF_ERROR_MESSAGE}
        assert wrapped_app.state.handler.calls == []

    def test_post_with_mismatched_token_rejected(self, api, wrapped_app):
        api.cookies.set("csrf-token", generate_csrf_token())
        response = api.post("/protected", headers={"x-csrf-token": generate_csrf_token()})

        assert response.status_code == 403
        assert wrapped_app.state.handler.calls == []

    def test_post_with_valid_token_reaches_handler(self, api, wrapped_app):
        response = api.post("/protected", headers=csrf_headers(api))

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert wrapped_app.state.handler.calls == [None]

    def test_get_needs_no_token(self, api):
        assert api.get("/read").status_code == 200

    def test_skip_csrf(self, api):
        assert api.post("/public").status_code == 200

    def test_csrf_rejection_does_not_count_against_limit(self, api, memory_store):
        for _ in range(5):
            api.post("/protected")
        assert len(memory_store) == 0

    async def test_custom_guard(self, limiter):
        guard = Mock(spec=CsrfGuard)
        guard.check.return_value = JSONResponse(status_code=403, content={"error": "nope"})
        request = Mock()
        request.method = "POST"
        handler = AsyncMock()

        response = await with_api_security(request, POLICY, handler, rate_limiter=limiter, csrf_guard=guard)

        assert response.status_code == 403
        handler.assert_not_called()


class TestRateLimitStage:
    """Test rate limiting in the wrapper"""

    def test_over_limit_returns_429_with_headers(self, api, wrapped_app, clock):
        assert api.post("/public").status_code == 200
        assert api.post("/public").status_code == 200

        response = api.post("/public")

        assert response.status_code == 429
        assert response.json() == {"error": GENERIC_ERROR_MESSAGES["RATE_LIMIT"]}
        assert response.headers["X-RateLimit-Limit"] == "2"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == str(int(clock() * 1000) + 60_000)
        assert response.headers["Retry-After"] == "60"
        assert len(wrapped_app.state.handler.calls) == 2

    def test_limit_recovers_after_window(self, api, clock):
        for _ in range(3):
            api.post("/public")

        clock.advance(60)
        assert api.post("/public").status_code == 200

    def test_user_id_gets_own_bucket(self, api, wrapped_app):
        headers = csrf_headers(api)
        for _ in range(3):
            api.post("/protected", headers=headers)

        response = api.post("/protected", headers={**headers, "x-user": "u-1"})

        assert response.status_code == 200
        assert wrapped_app.state.handler.calls[-1] == "u-1"

    def test_no_policy_means_no_limit(self, api, memory_store):
        for _ in range(10):
            assert api.post("/unlimited").status_code == 200
        assert len(memory_store) == 0


class TestErrorStage:
    """Test exception sanitization in the wrapper"""

    @patch.dict(os.environ, {"ENV": "production"})
    def test_exception_hidden_in_production(self, api, wrapped_app):
        wrapped_app.state.handler = Recorder(error=RuntimeError("db password leaked"))

        response = api.post("/public")

        assert response.status_code == 500
        assert response.json() == {"error": GENERIC_ERROR_MESSAGES["SERVER_ERROR"]}
        assert "leaked" not in response.text

    @patch.dict(os.environ, {"ENV": "development"})
    def test_exception_shown_in_development(self, api, wrapped_app):
        wrapped_app.state.handler = Recorder(error=RuntimeError("boom"))

        response = api.post("/public")

        assert response.status_code == 500
        assert response.json() == {"error": "boom"}

    def test_exception_is_logged(self, api, wrapped_app):
        wrapped_app.state.handler = Recorder(error=ValueError("bad"))

        with patch("roofguard.core.security.api_security.log_error") as mock_log:
            api.post("/public")

        mock_log.assert_called_once()
        context, error, metadata = mock_log.call_args.args
        assert context == "API"
        assert isinstance(error, ValueError)
        assert metadata == {"user_id": None}

    def test_http_exception_keeps_status(self, api, wrapped_app):
        wrapped_app.state.handler = Recorder(error=HTTPException(status_code=404, detail="Introuvable"))

        response = api.post("/public")

        assert response.status_code == 404
        assert response.json() == {"error": "Introuvable"}

    @patch.dict(os.environ, {"ENV": "production"})
    async def test_limiter_failure_is_sanitized(self):
        limiter = Mock()
        limiter.rate_limit = AsyncMock(side_effect=RuntimeError("limiter exploded"))
        request = Mock()
        request.method = "GET"
        handler = AsyncMock()

        response = await with_api_security(request, POLICY, handler, rate_limiter=limiter)

        assert response.status_code == 500
        assert response.body == JSONResponse(content={"error": GENERIC_ERROR_MESSAGES["SERVER_ERROR"]}).body
        handler.assert_not_called()


class TestAuthenticationStage:
    """Test the authenticate hook between CSRF and rate limiting"""

    async def test_user_id_comes_from_authenticated_user(self, limiter, memory_store):
        request = Mock()
        request.method = "GET"
        authenticate = AsyncMock(return_value=Mock(id="u-42"))
        handler = Recorder()

        response = await with_api_security(
            request, POLICY, handler, rate_limiter=limiter, authenticate=authenticate
        )

        assert response.status_code == 200
        assert handler.calls == ["u-42"]
        assert memory_store.get("wrapped:user:u-42").count == 1
        authenticate.assert_awaited_once_with(request)

    async def test_rejection_skips_limit_and_handler(self, limiter, memory_store):
        request = Mock()
        request.method = "GET"
        authenticate = AsyncMock(side_effect=HTTPException(status_code=401, detail="Session requise"))
        handler = AsyncMock()

        response = await with_api_security(
            request, POLICY, handler, rate_limiter=limiter, authenticate=authenticate
        )

        assert response.status_code == 401
        assert response.body == JSONResponse(status_code=401, content={"error": "Session requise"}).body
        assert len(memory_store) == 0
        handler.assert_not_called()

    async def test_csrf_runs_before_authentication(self, limiter):
        guard = Mock(spec=CsrfGuard)
        guard.check.return_value = JSONResponse(status_code=403, content={"error": "nope"})
        request = Mock()
        request.method = "POST"
        authenticate = AsyncMock()

        response = await with_api_security(
            request, POLICY, AsyncMock(), rate_limiter=limiter, csrf_guard=guard, authenticate=authenticate
        )

        assert response.status_code == 403
        authenticate.assert_not_called()
