"""Routing: resolve a prompt id (and optional model override) to concrete configs.

A prompt references its model weakly by id. The router looks both up in
the tenant's stores and returns snapshots for one generation attempt.
"""

from dataclasses import dataclass
from typing import Optional

from promptdesk.entities import ModelConfig, PromptConfig
from promptdesk.errors import NotFoundError
from promptdesk.stores import ModelStore, PromptStore


@dataclass
class RouteResult:
    """Resolved prompt and model for one attempt."""

    prompt: PromptConfig
    model: ModelConfig


def resolve_route(
    prompts: PromptStore,
    models: ModelStore,
    prompt_id: str,
    tenant: str,
    model_id: Optional[str] = None,
) -> RouteResult:
    """Resolve a prompt and its model within a tenant.

    Args:
        prompts: Prompt store.
        models: Model store.
        prompt_id: The prompt to generate from.
        tenant: Organization scope for both lookups.
        model_id: Overrides the prompt's own ``model_id`` when given.

    Returns:
        A RouteResult with both snapshots.

    Raises:
        NotFoundError: If the prompt or model does not exist in ``tenant``.
    """
    prompt = prompts.find_prompt_by_id(prompt_id, tenant)
    if prompt is None:
        raise NotFoundError("prompt", prompt_id)

    target = model_id or prompt.model_id
    model = models.find_model_by_id(target, tenant)
    if model is None:
        raise NotFoundError("model", target)

    return RouteResult(prompt=prompt, model=model)
