"""Shared fixtures: explicit settings, a fake clock and a recording upstream."""

from __future__ import annotations

import dataclasses
import os

import httpx
import openai
import pytest

from chatproxy.core.app import create_app
from chatproxy.core.settings import Settings
from chatproxy.core.state import GatewayState

SECRET = "s3cret"
ACCESS_TOKEN = "diag-token"


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _dump(value):
    if isinstance(value, Result):
        return value.model_dump()
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


class Result:
    """Stand-in for an SDK model: attribute access plus ``model_dump``."""

    def __init__(self, **data):
        self._data = data
        for key, value in data.items():
            setattr(self, key, value)

    def model_dump(self, **_kwargs):
        return {key: _dump(value) for key, value in self._data.items()}


class FakeStream:
    def __init__(self, events, fail_with=None):
        self.events = events
        self.fail_with = fail_with
        self.closed = False

    def __iter__(self):
        for event in self.events:
            yield event
        if self.fail_with is not None:
            raise self.fail_with

    def close(self):
        self.closed = True


class FakeUpstream:
    """Records every call; ``failures`` maps an operation name to the exception it raises."""

    def __init__(self):
        self.calls = []
        self.failures = {}
        self.stream = FakeStream(
            [
                {"type": "response.created", "response": {"id": "resp_1"}},
                {"type": "response.output_text.delta", "delta": "Hel"},
                {"type": "response.output_text.delta", "delta": "lo"},
                {
                    "type": "response.completed",
                    "response": {"id": "resp_1", "usage": {"input_tokens": 7, "output_tokens": 2}},
                },
            ]
        )
        self.file_checks = []
        self._file_counter = 0

    def _record(self, name, **kwargs):
        self.calls.append((name, kwargs))
        if name in self.failures:
            raise self.failures[name]

    def _inspect_file(self, file):
        _, content, _ = file
        if hasattr(content, "read"):
            self.file_checks.append({"path": content.name, "existed": os.path.exists(content.name)})
        else:
            self.file_checks.append({"path": None, "existed": False})

    def create_chat_completion(self, **payload):
        self._record("create_chat_completion", **payload)
        return Result(
            id="chatcmpl-1",
            object="chat.completion",
            choices=[Result(index=0, message=Result(role="assistant", content="Hi there"))],
            usage={
                "prompt_tokens": 12,
                "completion_tokens": 3,
                "prompt_tokens_details": {"cached_tokens": 4},
            },
        )

    def create_response(self, **payload):
        self._record("create_response", **payload)
        return Result(
            id="resp_1",
            object="response",
            output_text="Summary",
            usage={"input_tokens": 20, "output_tokens": 5, "input_tokens_details": {"cached_tokens": 1}},
        )

    def stream_response(self, **payload):
        self._record("stream_response", **payload)
        return self.stream

    def create_embedding(self, **payload):
        self._record("create_embedding", **payload)
        return Result(object="list", data=[{"embedding": [0.1, 0.2]}], usage={"prompt_tokens": 2})

    def transcribe_audio(self, **payload):
        self._inspect_file(payload["file"])
        self._record("transcribe_audio", **payload)
        return Result(text="hello world")

    def upload_file(self, file, purpose):
        self._inspect_file(file)
        self._record("upload_file", file=file, purpose=purpose)
        self._file_counter += 1
        return Result(id=f"file-{self._file_counter}", purpose=purpose)

    def retrieve_response(self, response_id):
        self._record("retrieve_response", response_id=response_id)
        return Result(id=response_id, status="completed")

    def cancel_response(self, response_id):
        self._record("cancel_response", response_id=response_id)
        return Result(id=response_id, status="cancelled")

    def delete_response(self, response_id):
        self._record("delete_response", response_id=response_id)

    def list_input_items(self, response_id, **params):
        self._record("list_input_items", response_id=response_id, **params)
        return Result(data=[{"id": "msg_1", "type": "message"}], has_more=False)

    def list_models(self):
        self._record("list_models")
        return Result(data=[{"id": "gpt-4o-mini"}, {"id": "whisper-1"}])

    def retrieve_model(self, model):
        self._record("retrieve_model", model=model)
        return Result(id=model, object="model")

    def names(self):
        return [name for name, _ in self.calls]


class FakeUpstreamFactory:
    def __init__(self, upstream):
        self.upstream = upstream
        self.controls = []

    def __call__(self, control=None):
        self.controls.append(control)
        return self.upstream


def status_error(status: int, body=None, message: str = "upstream said no") -> openai.APIStatusError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return openai.APIStatusError(message, response=response, body=body)


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        security_key=SECRET,
        openai_api_key="sk-test",
        openai_project=None,
        openai_organization=None,
        openai_base_url=None,
        log_access_token=ACCESS_TOKEN,
        default_model="gpt-4o-mini",
        default_embedding_model="text-embedding-3-small",
        default_transcription_model="whisper-1",
        default_temperature=0.5,
        default_top_p=0.5,
        request_timeout=900.0,
        upstream_max_retries=0,
        diagnostics_cooldown=10.0,
        info_log_capacity=10,
        error_log_capacity=10,
        upload_tmp_dir=str(tmp_path / "uploads"),
        inline_upload_max_bytes=1024,
        default_file_purpose="user_data",
        max_body_mb=10.0,
        log_level="WARNING",
        log_dir=None,
        port=3002,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def factory(upstream) -> FakeUpstreamFactory:
    return FakeUpstreamFactory(upstream)


@pytest.fixture()
def state(settings, clock) -> GatewayState:
    return GatewayState.from_settings(settings, clock=clock)


@pytest.fixture()
def app(settings, factory, state):
    return create_app(settings=settings, upstream_factory=factory, state=state)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def spill_settings(settings) -> Settings:
    """Settings that route every upload through a temp file."""
    return dataclasses.replace(settings, inline_upload_max_bytes=-1)


@pytest.fixture()
def spill_client(spill_settings, factory, state):
    return create_app(settings=spill_settings, upstream_factory=factory, state=state).test_client()
