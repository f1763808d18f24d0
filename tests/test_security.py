"""
Tests for row-level security policies and caller identity context
"""

import pytest

from luckypay.security import (
    Command, Policy, PolicyRegistry, auth_uid, is_service_role,
    identity_context, service_role, owner_is_caller, allow_all
)


class TestCallerContext:
    """Test the identity and service-role context variables"""
    
    def test_anonymous_by_default(self):
        assert auth_uid() is None
        assert not is_service_role()
    
    def test_identity_context_sets_and_restores(self):
        with identity_context("user-1"):
            assert auth_uid() == "user-1"
            with identity_context("user-2"):
                assert auth_uid() == "user-2"
            assert auth_uid() == "user-1"
        assert auth_uid() is None
    
    def test_identity_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with identity_context("user-1"):
                raise RuntimeError("boom")
        assert auth_uid() is None
    
    def test_service_role(self):
        with service_role():
            assert is_service_role()
        assert not is_service_role()


class TestPredicates:
    
    def test_owner_is_caller(self):
        predicate = owner_is_caller("user_id")
        assert predicate({"user_id": "u1"}, "u1")
        assert not predicate({"user_id": "u1"}, "u2")
        assert not predicate({"user_id": None}, None)
    
    def test_allow_all(self):
        assert allow_all({}, None)


class TestPolicyRegistry:
    """Test USING and WITH CHECK evaluation"""
    
    @pytest.fixture
    def registry(self):
        registry = PolicyRegistry()
        registry.enable_row_level_security("notes")
        registry.create_policy(Policy("own select", "notes", Command.SELECT,
                                      using=owner_is_caller("user_id")))
        registry.create_policy(Policy("own insert", "notes", Command.INSERT,
                                      with_check=owner_is_caller("user_id")))
        registry.create_policy(Policy("own update", "notes", Command.UPDATE,
                                      using=owner_is_caller("user_id")))
        return registry
    
    def test_duplicate_policy_name_rejected(self, registry):
        with pytest.raises(ValueError, match="already exists"):
            registry.create_policy(Policy("own select", "notes", Command.SELECT, using=allow_all))
    
    def test_using_filters_rows(self, registry):
        row = {"user_id": "u1"}
        with identity_context("u1"):
            assert registry.row_visible("notes", Command.SELECT, row)
        with identity_context("u2"):
            assert not registry.row_visible("notes", Command.SELECT, row)
        assert not registry.row_visible("notes", Command.SELECT, row)
    
    def test_no_applicable_policy_denies(self, registry):
        with identity_context("u1"):
            assert not registry.row_visible("notes", Command.DELETE, {"user_id": "u1"})
    
    def test_with_check_on_insert(self, registry):
        with identity_context("u1"):
            assert registry.new_row_allowed("notes", Command.INSERT, {"user_id": "u1"})
            assert not registry.new_row_allowed("notes", Command.INSERT, {"user_id": "u2"})
    
    def test_update_with_check_defaults_to_using(self, registry):
        with identity_context("u1"):
            assert registry.new_row_allowed("notes", Command.UPDATE, {"user_id": "u1"})
            assert not registry.new_row_allowed("notes", Command.UPDATE, {"user_id": "u2"})
    
    def test_all_command_policy_applies_everywhere(self):
        registry = PolicyRegistry()
        registry.enable_row_level_security("notes")
        registry.create_policy(Policy("owner", "notes", Command.ALL,
                                      using=owner_is_caller("user_id")))
        with identity_context("u1"):
            for command in (Command.SELECT, Command.UPDATE, Command.DELETE):
                assert registry.row_visible("notes", command, {"user_id": "u1"})
    
    def test_service_role_bypasses(self, registry):
        with service_role():
            assert registry.row_visible("notes", Command.DELETE, {"user_id": "u1"})
            assert registry.new_row_allowed("notes", Command.INSERT, {"user_id": "u1"})
    
    def test_tables_without_rls_are_open(self, registry):
        assert registry.row_visible("other", Command.SELECT, {})
        registry.disable_row_level_security("notes")
        assert registry.row_visible("notes", Command.SELECT, {"user_id": "u1"})
    
    def test_drop_policy(self, registry):
        assert registry.drop_policy("notes", "own select")
        assert not registry.drop_policy("notes", "own select")
        with identity_context("u1"):
            assert not registry.row_visible("notes", Command.SELECT, {"user_id": "u1"})
