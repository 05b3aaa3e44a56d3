"""Tests for the error translator and the secret checks."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from chatproxy.api.auth import authorize, authorize_diagnostics, require_secret
from chatproxy.api.errors import (
    AuthorizationFailure,
    BodyReadError,
    RateLimited,
    ValidationFailure,
    describe_failure,
    is_internal,
    translate_error,
)

from conftest import status_error


class TestTranslateError:
    def test_upstream_status_and_error_object_are_kept(self):
        body = {"message": "bad model", "type": "invalid_request_error", "param": "model", "code": None}
        status, payload, mimetype = translate_error(status_error(400, body))
        assert status == 400
        assert payload == {"error": body}
        assert mimetype == "application/json"

    def test_upstream_envelope_is_unwrapped(self):
        inner = {"message": "slow down", "type": "rate_limit_error", "param": None, "code": "rate_limit"}
        status, payload, _ = translate_error(status_error(429, {"error": inner}))
        assert status == 429
        assert payload == {"error": inner}

    def test_upstream_without_body(self):
        status, payload, _ = translate_error(status_error(502, None, message="Bad gateway"))
        assert status == 502
        assert payload["error"]["message"] == "Bad gateway"

    def test_validation_failure_envelope(self):
        status, payload, mimetype = translate_error(ValidationFailure("No input provided", param="input"))
        assert status == 400
        assert payload["error"]["message"] == "No input provided"
        assert payload["error"]["param"] == "input"
        assert mimetype == "application/json"

    def test_forbidden(self):
        status, payload, _ = translate_error(AuthorizationFailure())
        assert status == 403
        assert payload["error"]["message"] == "Forbidden"

    @pytest.mark.parametrize("err", [RuntimeError("sk-secret in trace"), BodyReadError("bad multipart")])
    def test_internal_errors_are_opaque(self, err):
        status, body, mimetype = translate_error(err)
        assert (status, body, mimetype) == (500, "Internal Server Error", "text/plain")

    def test_rate_limited(self):
        status, _, _ = translate_error(RateLimited(retry_after=3))
        assert status == 429


class TestDescribeFailure:
    def test_internal_details_are_not_described(self):
        assert describe_failure(RuntimeError("sk-secret")) == "RuntimeError"

    def test_upstream_keeps_status(self):
        assert describe_failure(status_error(500, None, message="upstream down")) == "upstream 500: upstream down"

    def test_is_internal(self):
        assert is_internal(RuntimeError())
        assert is_internal(BodyReadError("x"))
        assert is_internal(status_error(400))
        assert not is_internal(ValidationFailure("x"))
        assert not is_internal(AuthorizationFailure())


class TestAuthorize:
    def test_exact_match_only(self):
        assert authorize("abc", "abc")
        assert not authorize("abc ", "abc")
        assert not authorize("ABC", "abc")

    @pytest.mark.parametrize("provided", [None, "", 123, ["abc"]])
    def test_missing_or_wrong_type_fails(self, provided):
        assert not authorize(provided, "abc")

    def test_fails_closed_without_configured_secret(self):
        assert not authorize("", "")
        assert not authorize("anything", None)

    def test_diagnostics_token(self):
        assert authorize_diagnostics({"access_token": "t"}, "t")
        assert not authorize_diagnostics({}, "t")

    def test_require_secret(self):
        settings = SimpleNamespace(security_key="k")
        require_secret("k", settings)
        with pytest.raises(AuthorizationFailure):
            require_secret("nope", settings)
