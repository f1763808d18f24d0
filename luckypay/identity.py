"""
Identity Provider

Sign-up, sign-in and session tokens for phone-number identities. Passwords
are hashed with salted scrypt; sessions are stateless signed JWTs whose
``sub`` claim is the identity id. Creating an identity fires the
profile-provisioning trigger in the same transaction.
"""

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, Optional

import jwt

from .config import LuckyPayConfig, get_config
from .database import Database
from .errors import AuthenticationError
from .logging_config import log_action
from .models import Identity
from .schema import AUTH_USERS
from .security import service_role


logger = logging.getLogger(__name__)


@dataclass
class Session:
    """A signed-in identity and its bearer token"""
    identity: Identity
    access_token: str
    expires_at: datetime
    token_type: str = "bearer"
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_at": self.expires_at.isoformat(),
            "user_id": self.identity.id
        }


class IdentityProvider:
    """Manages identities in ``auth_users``; runs with row-level security bypassed"""
    
    def __init__(self, database: Database, config: Optional[LuckyPayConfig] = None):
        self.database = database
        self.config = config or get_config()
    
    def sign_up(self, phone: str, password: str, full_name: Optional[str] = None) -> Identity:
        """
        Create an identity and, through the provisioning trigger, its profile.
        
        Raises:
            ValueError: phone missing or password too short
            UniqueViolation: phone already registered
        """
        phone = (phone or "").strip()
        if not phone:
            raise ValueError("Phone number is required")
        if len(password or "") < self.config.password_min_length:
            raise ValueError(
                f"Password must be at least {self.config.password_min_length} characters"
            )
        
        salt = self._generate_salt()
        metadata = {"full_name": full_name} if full_name is not None else {}
        
        with service_role():
            row = self.database.insert(AUTH_USERS, {
                "phone": phone,
                "password_hash": self._hash_password(password, salt),
                "password_salt": salt,
                "raw_user_meta_data": metadata,
            })
        
        identity = Identity.from_row(row)
        log_action(logger, "info", "Identity created", user_id=identity.id,
                   action="sign_up", resource=AUTH_USERS)
        return identity
    
    def sign_in(self, phone: str, password: str) -> Session:
        """Verify credentials and issue a session token"""
        with service_role():
            row = self.database.select_one(AUTH_USERS, {"phone": (phone or "").strip()})
        
        if row is None or not self._verify_password(row, password or ""):
            log_action(logger, "warning", "Sign-in failed", action="sign_in",
                       resource=AUTH_USERS, extra={"reason": "invalid_credentials"})
            raise AuthenticationError("Invalid credentials")
        
        identity = Identity.from_row(row)
        session = self.issue_session(identity)
        log_action(logger, "info", "Signed in", user_id=identity.id,
                   action="sign_in", resource=AUTH_USERS)
        return session
    
    def issue_session(self, identity: Identity) -> Session:
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(hours=self.config.jwt_expiry_hours)
        payload = {
            "sub": identity.id,
            "phone": identity.phone,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp())
        }
        token = jwt.encode(payload, self.config.jwt_secret, algorithm=self.config.jwt_algorithm)
        return Session(identity=identity, access_token=token, expires_at=expires_at)
    
    def verify_token(self, token: str) -> str:
        """Return the identity id the token was issued to"""
        try:
            payload = jwt.decode(token, self.config.jwt_secret, algorithms=[self.config.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token")
        
        identity_id = payload.get("sub")
        if not identity_id or self.get_identity(identity_id) is None:
            raise AuthenticationError("Unknown identity")
        return identity_id
    
    def get_identity(self, identity_id: str) -> Optional[Identity]:
        with service_role():
            row = self.database.select_one(AUTH_USERS, {"id": identity_id})
        return Identity.from_row(row) if row else None
    
    def delete_identity(self, identity_id: str) -> bool:
        """Delete an identity; owned rows in every table go with it"""
        with service_role():
            deleted = self.database.delete(AUTH_USERS, {"id": identity_id})
        
        if deleted:
            log_action(logger, "info", "Identity deleted", user_id=identity_id,
                       action="delete_identity", resource=AUTH_USERS)
        return deleted > 0
    
    def _generate_salt(self) -> str:
        return secrets.token_hex(16)
    
    def _hash_password(self, password: str, salt: str) -> str:
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()
    
    def _verify_password(self, row: Dict[str, Any], password: str) -> bool:
        if not row.get("password_hash") or not row.get("password_salt"):
            return False
        expected = self._hash_password(password, row["password_salt"])
        return hmac.compare_digest(expected, row["password_hash"])
