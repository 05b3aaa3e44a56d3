"""OpenAI client helpers with timeout/retry support."""
from typing import Any, Iterable, Optional

import openai


def create_client(
    api_key: str,
    base_url: Optional[str],
    timeout: float,
    max_retries: int,
    project: Optional[str] = None,
    organization: Optional[str] = None,
) -> openai.OpenAI:
    """Create a configured OpenAI client."""
    kwargs = {
        "api_key": api_key,
        "timeout": timeout,
        "max_retries": max_retries,
        "project": project,
        "organization": organization,
    }
    if base_url:
        kwargs["base_url"] = base_url
    return openai.OpenAI(**kwargs)


class UpstreamClient:
    """The upstream operations the gateway composes; nothing here reshapes payloads."""

    def __init__(self, client: openai.OpenAI):
        self._client = client

    def create_chat_completion(self, **payload: Any) -> Any:
        return self._client.chat.completions.create(**payload)

    def create_response(self, **payload: Any) -> Any:
        return self._client.responses.create(**payload)

    def stream_response(self, **payload: Any) -> Iterable[Any]:
        """Stream responses events."""
        payload.pop("stream", None)
        return self._client.responses.create(stream=True, **payload)

    def create_embedding(self, **payload: Any) -> Any:
        return self._client.embeddings.create(**payload)

    def transcribe_audio(self, **payload: Any) -> Any:
        return self._client.audio.transcriptions.create(**payload)

    def upload_file(self, file: Any, purpose: str) -> Any:
        return self._client.files.create(file=file, purpose=purpose)

    def retrieve_response(self, response_id: str) -> Any:
        return self._client.responses.retrieve(response_id)

    def cancel_response(self, response_id: str) -> Any:
        return self._client.responses.cancel(response_id)

    def delete_response(self, response_id: str) -> Any:
        return self._client.responses.delete(response_id)

    def list_input_items(self, response_id: str, **params: Any) -> Any:
        return self._client.responses.input_items.list(response_id, **params)

    def list_models(self) -> Any:
        return self._client.models.list()

    def retrieve_model(self, model: str) -> Any:
        return self._client.models.retrieve(model)


class UpstreamFactory:
    """Build an ``UpstreamClient`` for a request, honouring per-request overrides."""

    def __init__(self, settings):
        self._settings = settings

    def __call__(self, control=None) -> UpstreamClient:
        settings = self._settings
        api_key = getattr(control, "openai_api_key", None) or settings.openai_api_key
        if not api_key:
            raise openai.OpenAIError("No upstream API key configured")
        client = create_client(
            api_key=api_key,
            base_url=settings.openai_base_url,
            timeout=getattr(control, "timeout", None) or settings.request_timeout,
            max_retries=settings.upstream_max_retries,
            project=getattr(control, "project", None) or settings.openai_project,
            organization=getattr(control, "organization", None) or settings.openai_organization,
        )
        return UpstreamClient(client)
