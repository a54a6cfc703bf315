"""Tests for the collaborator stores."""

import pytest

from conftest import TENANT, VALID_KEY
from promptdesk.auth import hash_api_key, validate_api_key
from promptdesk.entities import LifecycleState, ModelConfig, Organization
from promptdesk.stores import (
    KeyRotationError,
    ModelStore,
    OrganizationStore,
    VariableStore,
)


class TestModelStore:
    def test_tenant_scoped(self, chat_model: ModelConfig) -> None:
        store = ModelStore()
        store.add(chat_model)
        assert store.find_model_by_id("chat-model", TENANT) is chat_model
        assert store.find_model_by_id("chat-model", "globex") is None

    def test_deleted_model_hidden(self, chat_model: ModelConfig) -> None:
        from dataclasses import replace

        store = ModelStore()
        store.add(replace(chat_model, state=LifecycleState.DELETED))
        assert store.find_model_by_id("chat-model", TENANT) is None


class TestOrganizationStore:
    def test_resolve_api_key_from_env(self, organizations: OrganizationStore) -> None:
        assert organizations.resolve_api_key(TENANT) == "sk-provider-123"

    def test_resolve_api_key_unset(
        self, organizations: OrganizationStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("ACME_PROVIDER_KEY")
        assert organizations.resolve_api_key(TENANT) is None
        assert organizations.resolve_api_key("unknown") is None

    def test_rotate_appends_new_description(self, organizations: OrganizationStore) -> None:
        raw_key, issued = organizations.rotate_key(TENANT, description="ci")

        keys = organizations.list_keys(TENANT)
        assert [k.description for k in keys] == ["default", "ci"]
        assert issued.key_hash == hash_api_key(raw_key)
        assert raw_key not in (k.key_hash for k in keys)

    def test_rotate_replaces_by_description(self, organizations: OrganizationStore) -> None:
        raw_key, _ = organizations.rotate_key(TENANT, description="default")

        keys = organizations.list_keys(TENANT)
        assert len(keys) == 1
        assert validate_api_key(raw_key, organizations.key_hashes()) == TENANT
        with pytest.raises(Exception):
            validate_api_key(VALID_KEY, organizations.key_hashes())

    def test_rotate_replaces_by_index(self, organizations: OrganizationStore) -> None:
        organizations.rotate_key(TENANT, description="ci")
        raw_key, issued = organizations.rotate_key(TENANT, index=1)

        keys = organizations.list_keys(TENANT)
        assert len(keys) == 2
        assert issued.description == "ci"
        assert keys[1].key_hash == hash_api_key(raw_key)

    def test_rotate_index_out_of_range(self, organizations: OrganizationStore) -> None:
        with pytest.raises(KeyRotationError, match="out of range"):
            organizations.rotate_key(TENANT, index=5)

    def test_rotate_unknown_organization(self, organizations: OrganizationStore) -> None:
        with pytest.raises(KeyRotationError, match="not found"):
            organizations.rotate_key("nobody")

    def test_deleted_organization_keys_ignored(self) -> None:
        store = OrganizationStore()
        org = Organization(id="gone", name="Gone", state=LifecycleState.DELETED)
        store.add(org)
        assert list(store.key_hashes()) == []


class TestVariableStore:
    def test_upsert_creates_then_replaces(self) -> None:
        store = VariableStore()
        assert store.get(TENANT) == {}

        store.upsert(TENANT, {"a": 1})
        store.upsert(TENANT, {"b": 2})

        assert store.get(TENANT) == {"b": 2}

    def test_tenants_isolated(self) -> None:
        store = VariableStore()
        store.upsert("acme", {"a": 1})
        store.upsert("globex", {"a": 2})
        assert store.get("acme") == {"a": 1}

    def test_returned_dict_is_a_copy(self) -> None:
        store = VariableStore()
        store.upsert(TENANT, {"a": 1})
        store.get(TENANT)["a"] = 99
        assert store.get(TENANT) == {"a": 1}
