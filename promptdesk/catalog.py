"""Catalog loader: seeds the stores from a YAML file.

The catalog describes organizations, models, prompts and tenant variables.
Example::

    organizations:
      - id: acme
        name: Acme
        api_key_env: ACME_OPENAI_KEY
        keys:
          - description: default
            key_hash: <sha256 of the raw key>
    models:
      - id: gpt-chat
        organization_id: acme
        type: chat
        api_call:
          url: https://api.openai.com/v1/chat/completions
          headers:
            Authorization: "Bearer {{api_key}}"
        response_mapping:
          output: {$path: body.choices.0.message.content}
          error: {$path: body.error.message}
    prompts:
      - id: greet
        organization_id: acme
        model_id: gpt-chat
        prompt_data:
          messages:
            - {role: user, content: "Say hi to {{name}}"}
    variables:
      acme: {company: Acme Corp}
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from promptdesk.entities import (
    ApiCall,
    LifecycleState,
    ModelConfig,
    ModelType,
    Organization,
    OrganizationKey,
    PromptConfig,
)
from promptdesk.stores import ModelStore, OrganizationStore, PromptStore, VariableStore


@dataclass
class Catalog:
    """Parsed catalog contents."""

    organizations: List[Organization] = field(default_factory=list)
    models: List[ModelConfig] = field(default_factory=list)
    prompts: List[PromptConfig] = field(default_factory=list)
    variables: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Catalog":
        """Build a catalog from a parsed YAML mapping.

        Raises:
            ValueError: If an entry is missing a required field or uses an
                unknown model type.
        """
        try:
            return cls(
                organizations=[_organization(o) for o in data.get("organizations", [])],
                models=[_model(m) for m in data.get("models", [])],
                prompts=[_prompt(p) for p in data.get("prompts", [])],
                variables={
                    tenant: dict(values or {})
                    for tenant, values in (data.get("variables") or {}).items()
                },
            )
        except KeyError as exc:
            raise ValueError("Catalog entry is missing field {}".format(exc)) from exc

    def populate(
        self,
        organizations: OrganizationStore,
        models: ModelStore,
        prompts: PromptStore,
        variables: VariableStore,
    ) -> None:
        """Load every catalog entry into the given stores."""
        for org in self.organizations:
            organizations.add(org)
        for model in self.models:
            models.add(model)
        for prompt in self.prompts:
            prompts.add(prompt)
        for tenant, values in self.variables.items():
            variables.upsert(tenant, values)


def load_catalog(path: Union[str, Path]) -> Catalog:
    """Load a catalog from a YAML file.

    Args:
        path: Path to the YAML catalog file.

    Returns:
        The parsed Catalog.

    Raises:
        FileNotFoundError: If the catalog file does not exist.
        ValueError: If the YAML is invalid.
    """
    catalog_path = Path(path)
    if not catalog_path.exists():
        raise FileNotFoundError("Catalog file not found: {}".format(path))

    with open(catalog_path, "r") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError("Invalid catalog YAML: {}".format(exc)) from exc

    if not isinstance(raw, dict):
        raise ValueError("Catalog file must contain a YAML mapping at the top level")

    return Catalog.from_dict(raw)


def _state(data: Dict[str, Any]) -> LifecycleState:
    return LifecycleState(data.get("state", LifecycleState.ACTIVE.value))


def _organization(data: Dict[str, Any]) -> Organization:
    return Organization(
        id=str(data["id"]),
        name=data.get("name", data["id"]),
        api_key_env=data.get("api_key_env"),
        keys=[
            OrganizationKey(
                description=key.get("description", "default"),
                key_hash=key["key_hash"],
            )
            for key in data.get("keys", [])
        ],
        state=_state(data),
    )


def _model(data: Dict[str, Any]) -> ModelConfig:
    try:
        model_type = ModelType(data["type"])
    except ValueError as exc:
        raise ValueError(
            "Model '{}' has unknown type '{}'".format(data.get("id"), data["type"])
        ) from exc

    api_call = data["api_call"]
    return ModelConfig(
        id=str(data["id"]),
        name=data.get("name", data["id"]),
        type=model_type,
        api_call=ApiCall(
            url=api_call["url"],
            method=api_call.get("method", "POST"),
            headers=dict(api_call.get("headers", {})),
        ),
        organization_id=str(data["organization_id"]),
        request_mapping=data.get("request_mapping"),
        response_mapping=data["response_mapping"],
        model_parameters=dict(data.get("model_parameters", {})),
        state=_state(data),
    )


def _prompt(data: Dict[str, Any]) -> PromptConfig:
    return PromptConfig(
        id=str(data["id"]),
        name=data.get("name", data["id"]),
        description=data.get("description", ""),
        model_id=str(data["model_id"]),
        prompt_data=data["prompt_data"],
        prompt_variables=dict(data.get("prompt_variables", {})),
        organization_id=str(data["organization_id"]),
        public=bool(data.get("public", False)),
        state=_state(data),
    )
