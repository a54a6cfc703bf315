"""Shared test fixtures for the PromptDesk tests."""

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import yaml

from promptdesk.auth import hash_api_key
from promptdesk.config import PromptDeskConfig, load_config
from promptdesk.entities import (
    ApiCall,
    ModelConfig,
    ModelType,
    Organization,
    OrganizationKey,
    PromptConfig,
)
from promptdesk.provider import ProviderClient
from promptdesk.stores import OrganizationStore

TENANT = "acme"
VALID_KEY = "test-key-1"
PROVIDER_KEY_ENV = "ACME_PROVIDER_KEY"

CHAT_RESPONSE_MAPPING = {
    "output": {"$path": "body.choices.0.message.content"},
    "error": {"$path": "body.error.message", "default": None},
}

COMPLETION_RESPONSE_MAPPING = {
    "output": {"$path": "body.text"},
    "error": {"$path": "body.error", "default": None},
}


def catalog_dict() -> Dict[str, Any]:
    """A small catalog with one organization, two models and three prompts."""
    return {
        "organizations": [
            {
                "id": TENANT,
                "name": "Acme",
                "api_key_env": PROVIDER_KEY_ENV,
                "keys": [{"description": "default", "key_hash": hash_api_key(VALID_KEY)}],
            },
            {"id": "globex", "name": "Globex"},
        ],
        "models": [
            {
                "id": "chat-model",
                "organization_id": TENANT,
                "type": "chat",
                "api_call": {
                    "url": "https://provider.test/v1/chat",
                    "headers": {"Authorization": "Bearer {{api_key}}"},
                },
                "model_parameters": {"model": "test-chat", "temperature": 0.2},
                "response_mapping": CHAT_RESPONSE_MAPPING,
            },
            {
                "id": "completion-model",
                "organization_id": TENANT,
                "type": "completion",
                "api_call": {"url": "https://provider.test/v1/complete"},
                "model_parameters": {"max_tokens": 64},
                "request_mapping": {
                    "input": {"$path": "prompt"},
                    "options": {"$path": "parameters"},
                },
                "response_mapping": COMPLETION_RESPONSE_MAPPING,
            },
        ],
        "prompts": [
            {
                "id": "summarize",
                "name": "Summarizer",
                "description": "Summarize some text.",
                "organization_id": TENANT,
                "model_id": "completion-model",
                "public": True,
                "prompt_data": "Summarize: {{text}}",
                "prompt_variables": {"text": {"type": "text"}},
            },
            {
                "id": "explain",
                "name": "Explainer",
                "organization_id": TENANT,
                "model_id": "chat-model",
                "prompt_data": {
                    "context": "You work for {{company}}.",
                    "messages": [{"role": "user", "content": "Explain {{topic}}."}],
                },
                "prompt_variables": {"topic": {"type": "text"}},
            },
            {
                "id": "dangling",
                "name": "Dangling",
                "organization_id": TENANT,
                "model_id": "deleted-model",
                "prompt_data": "Hello",
            },
        ],
        "variables": {TENANT: {"company": "Acme Corp"}},
    }


def _make_config(tmp_path: Path, overrides: Optional[Dict] = None) -> str:
    """Write a catalog plus a config pointing at it and return the config path."""
    catalog_path = tmp_path / "catalog.yaml"
    catalog_path.write_text(yaml.safe_dump(catalog_dict()))

    config = {
        "catalog_file": str(catalog_path),
        "log_file": str(tmp_path / "test.log"),
        "generation_log_file": str(tmp_path / "generations.jsonl"),
        "default_timeout_seconds": 5,
        "auth": {"enabled": True},
    }
    if overrides:
        config.update(overrides)

    path = tmp_path / "test_config.json"
    path.write_text(json.dumps(config))
    return str(path)


@pytest.fixture()
def test_config_path(tmp_path: Path) -> str:
    """Return the path to a temporary test config file."""
    return _make_config(tmp_path)


@pytest.fixture()
def test_config(test_config_path: str) -> PromptDeskConfig:
    """Return a loaded test PromptDeskConfig."""
    return load_config(test_config_path)


@pytest.fixture()
def chat_model() -> ModelConfig:
    return ModelConfig(
        id="chat-model",
        name="Chat",
        type=ModelType.CHAT,
        api_call=ApiCall(
            url="https://provider.test/v1/chat",
            headers={"Authorization": "Bearer {{api_key}}"},
        ),
        organization_id=TENANT,
        response_mapping=CHAT_RESPONSE_MAPPING,
        model_parameters={"model": "test-chat"},
    )


@pytest.fixture()
def completion_model() -> ModelConfig:
    return ModelConfig(
        id="completion-model",
        name="Completion",
        type=ModelType.COMPLETION,
        api_call=ApiCall(url="https://provider.test/v1/complete"),
        organization_id=TENANT,
        response_mapping=COMPLETION_RESPONSE_MAPPING,
        model_parameters={"max_tokens": 64},
    )


@pytest.fixture()
def summarize_prompt() -> PromptConfig:
    return PromptConfig(
        id="summarize",
        name="Summarizer",
        model_id="completion-model",
        prompt_data="Summarize: {{text}}",
        organization_id=TENANT,
    )


@pytest.fixture()
def chat_prompt() -> PromptConfig:
    return PromptConfig(
        id="explain",
        name="Explainer",
        model_id="chat-model",
        prompt_data=[{"role": "user", "content": "Tell me about {{topic}}."}],
        organization_id=TENANT,
    )


@pytest.fixture()
def organizations(monkeypatch: pytest.MonkeyPatch) -> OrganizationStore:
    """An organization store whose tenant has a provider secret in the env."""
    monkeypatch.setenv(PROVIDER_KEY_ENV, "sk-provider-123")
    store = OrganizationStore()
    store.add(
        Organization(
            id=TENANT,
            name="Acme",
            api_key_env=PROVIDER_KEY_ENV,
            keys=[OrganizationKey("default", hash_api_key(VALID_KEY))],
        )
    )
    return store


@pytest.fixture()
def make_provider() -> Callable[..., ProviderClient]:
    """Factory for a ProviderClient backed by an httpx.MockTransport.

    The returned client answers every request with ``status`` and ``body``
    and appends each request it sees to ``seen`` when given.
    """

    def factory(
        status: int = 200,
        body: Any = None,
        seen: Optional[List[httpx.Request]] = None,
        handler: Optional[Callable[[httpx.Request], Any]] = None,
    ) -> ProviderClient:
        def default_handler(request: httpx.Request) -> httpx.Response:
            if seen is not None:
                seen.append(request)
            return httpx.Response(status, json=body)

        return ProviderClient(transport=httpx.MockTransport(handler or default_handler))

    return factory
