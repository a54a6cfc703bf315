"""In-memory collaborator stores for models, prompts, organizations and variables.

These are the read-side interfaces the generation core depends on. The
orchestrator only ever reads models and prompts; organizations supply the
provider secret for a tenant; the variable store holds one document of
tenant-wide variables per organization with upsert semantics.
"""

import os
import threading
from typing import Any, Dict, Iterator, List, Optional, Tuple

from promptdesk.auth import generate_api_key
from promptdesk.entities import (
    LifecycleState,
    ModelConfig,
    Organization,
    OrganizationKey,
    PromptConfig,
)


class ModelStore:
    """Tenant-scoped lookup of model configurations."""

    def __init__(self) -> None:
        self._models: Dict[str, ModelConfig] = {}

    def add(self, model: ModelConfig) -> None:
        self._models[model.id] = model

    def find_model_by_id(self, model_id: str, tenant: str) -> Optional[ModelConfig]:
        model = self._models.get(model_id)
        if model is None or model.organization_id != tenant:
            return None
        if model.state != LifecycleState.ACTIVE:
            return None
        return model


class PromptStore:
    """Tenant-scoped lookup of prompt configurations."""

    def __init__(self) -> None:
        self._prompts: Dict[str, PromptConfig] = {}

    def add(self, prompt: PromptConfig) -> None:
        self._prompts[prompt.id] = prompt

    def find_prompt_by_id(self, prompt_id: str, tenant: str) -> Optional[PromptConfig]:
        prompt = self._prompts.get(prompt_id)
        if prompt is None or prompt.organization_id != tenant:
            return None
        if prompt.state != LifecycleState.ACTIVE:
            return None
        return prompt

    def find_public_prompt(self, prompt_id: str) -> Optional[PromptConfig]:
        """Look up a prompt exposed on the unauthenticated app surface."""
        prompt = self._prompts.get(prompt_id)
        if prompt is None or not prompt.public:
            return None
        if prompt.state != LifecycleState.ACTIVE:
            return None
        return prompt


class KeyRotationError(Exception):
    """Raised when a key rotation targets an unknown organization or index."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class OrganizationStore:
    """Organizations, their access keys and their provider secret.

    Access keys are stored as SHA-256 hashes only; the raw key is returned
    exactly once, from ``rotate_key``.
    """

    def __init__(self) -> None:
        self._orgs: Dict[str, Organization] = {}
        self._lock = threading.Lock()

    def add(self, organization: Organization) -> None:
        self._orgs[organization.id] = organization

    def get(self, tenant: str) -> Optional[Organization]:
        org = self._orgs.get(tenant)
        if org is None or org.state != LifecycleState.ACTIVE:
            return None
        return org

    def resolve_api_key(self, tenant: str) -> Optional[str]:
        """Return the provider secret for ``tenant``, or None if unset."""
        org = self.get(tenant)
        if org is None or not org.api_key_env:
            return None
        return os.getenv(org.api_key_env) or None

    def key_hashes(self) -> Iterator[Tuple[str, str]]:
        """Yield ``(tenant, key_hash)`` pairs for every active organization."""
        for org in self._orgs.values():
            if org.state != LifecycleState.ACTIVE:
                continue
            for key in org.keys:
                yield org.id, key.key_hash

    def rotate_key(
        self,
        tenant: str,
        description: Optional[str] = None,
        index: Optional[int] = None,
    ) -> Tuple[str, OrganizationKey]:
        """Issue a new access key for ``tenant``.

        The new key replaces the entry at ``index`` when given, otherwise
        the entry whose description matches, otherwise it is appended.

        Returns:
            The raw key and its stored record. Only the hash is retained.

        Raises:
            KeyRotationError: If the organization is unknown or ``index``
                is out of range.
        """
        raw_key, key_hash = generate_api_key()

        with self._lock:
            org = self.get(tenant)
            if org is None:
                raise KeyRotationError("Organization '{}' not found.".format(tenant))

            if index is not None:
                if not 0 <= index < len(org.keys):
                    raise KeyRotationError(
                        "Key index {} is out of range.".format(index)
                    )
                position = index
                label = description or org.keys[index].description
            else:
                label = description or "default"
                position = next(
                    (i for i, key in enumerate(org.keys) if key.description == label),
                    None,
                )

            issued = OrganizationKey(label, key_hash)
            if position is None:
                org.keys.append(issued)
            else:
                org.keys[position] = issued
            return raw_key, issued

    def list_keys(self, tenant: str) -> List[OrganizationKey]:
        org = self.get(tenant)
        return list(org.keys) if org else []


class VariableStore:
    """Tenant-wide variables, keyed uniquely by tenant."""

    def __init__(self) -> None:
        self._variables: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, tenant: str) -> Dict[str, Any]:
        return dict(self._variables.get(tenant, {}))

    def upsert(self, tenant: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the tenant's variable document, creating it if needed."""
        with self._lock:
            self._variables[tenant] = dict(variables)
            return dict(self._variables[tenant])
