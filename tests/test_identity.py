"""
Tests for the identity provider: sign-up, sign-in, tokens and deletion
"""

import pytest
import jwt
from datetime import datetime, timezone, timedelta

from luckypay.errors import AuthenticationError, UniqueViolation
from luckypay.identity import IdentityProvider
from luckypay.schema import AUTH_USERS, PROFILES, TRANSACTIONS, BANK_ACCOUNTS, AUDIT_LOGS
from luckypay.security import identity_context, service_role


class TestSignUp:
    
    def test_sign_up_creates_identity_and_profile(self, system, alice):
        assert alice.phone == "+2348011111111"
        assert alice.full_name == "Alice Okafor"
        with service_role():
            assert system.database.select_one(PROFILES, {"id": alice.id}) is not None
    
    def test_password_is_hashed(self, system, alice):
        with service_role():
            row = system.database.select_one(AUTH_USERS, {"id": alice.id})
        assert row["password_hash"] != "password1"
        assert len(row["password_salt"]) == 32
    
    def test_duplicate_phone_rejected(self, system, alice):
        with pytest.raises(UniqueViolation):
            system.identity.sign_up("+2348011111111", "another1")
        with service_role():
            assert len(system.database.select(AUTH_USERS)) == 1
    
    def test_short_password_rejected(self, system):
        with pytest.raises(ValueError, match="at least 6 characters"):
            system.identity.sign_up("+2348000000000", "123")
    
    def test_phone_required(self, system):
        with pytest.raises(ValueError, match="Phone number is required"):
            system.identity.sign_up("   ", "password1")


class TestSignIn:
    
    def test_sign_in_returns_token_for_identity(self, system, alice):
        session = system.identity.sign_in("+2348011111111", "password1")
        
        assert session.identity.id == alice.id
        assert session.token_type == "bearer"
        payload = jwt.decode(session.access_token, "test-secret", algorithms=["HS256"])
        assert payload["sub"] == alice.id
        assert session.expires_at > datetime.now(timezone.utc)
    
    def test_wrong_password(self, system, alice):
        with pytest.raises(AuthenticationError, match="Invalid credentials"):
            system.identity.sign_in("+2348011111111", "wrong-password")
    
    def test_unknown_phone(self, system):
        with pytest.raises(AuthenticationError):
            system.identity.sign_in("+2340000000000", "password1")
    
    def test_session_to_dict(self, system, alice):
        data = system.identity.sign_in("+2348011111111", "password1").to_dict()
        assert data["user_id"] == alice.id
        assert set(data) == {"access_token", "token_type", "expires_at", "user_id"}


class TestVerifyToken:
    
    def test_valid_token(self, system, alice):
        session = system.identity.sign_in("+2348011111111", "password1")
        assert system.identity.verify_token(session.access_token) == alice.id
    
    def test_expired_token(self, system, alice):
        expired = jwt.encode(
            {"sub": alice.id, "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            "test-secret", algorithm="HS256"
        )
        with pytest.raises(AuthenticationError, match="expired"):
            system.identity.verify_token(expired)
    
    def test_wrong_signature(self, system, alice):
        forged = jwt.encode({"sub": alice.id}, "not-the-secret", algorithm="HS256")
        with pytest.raises(AuthenticationError, match="Invalid token"):
            system.identity.verify_token(forged)
    
    def test_garbage_token(self, system):
        with pytest.raises(AuthenticationError):
            system.identity.verify_token("not-a-jwt")
    
    def test_deleted_identity(self, system, alice):
        session = system.identity.sign_in("+2348011111111", "password1")
        system.identity.delete_identity(alice.id)
        with pytest.raises(AuthenticationError, match="Unknown identity"):
            system.identity.verify_token(session.access_token)


class TestDeleteIdentity:
    
    def test_delete_cascades_to_owned_rows(self, system, alice, bob):
        client = system.client()
        client.create_verification_payment(alice.id)
        client.add_bank_account(alice.id, "0123456789", "Alice Okafor", "GTBank")
        with service_role():
            system.database.update(PROFILES, {"id": alice.id}, {"balance": "50.00"})
        client.create_verification_payment(bob.id)
        
        assert system.identity.delete_identity(alice.id)
        
        with service_role():
            for table, column in ((PROFILES, "id"), (TRANSACTIONS, "user_id"),
                                  (BANK_ACCOUNTS, "user_id"), (AUDIT_LOGS, "user_id")):
                assert system.database.select(table, {column: alice.id}) == []
            assert len(system.database.select(TRANSACTIONS, {"user_id": bob.id})) == 1
    
    def test_delete_unknown_identity(self, system):
        assert not system.identity.delete_identity("missing")
    
    def test_get_identity(self, system, alice):
        assert system.identity.get_identity(alice.id).phone == alice.phone
        assert system.identity.get_identity("missing") is None
