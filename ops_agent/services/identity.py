from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from typing import Callable, Optional

from pymongo.errors import PyMongoError

from ops_agent.schemas.context import UNKNOWN_USER_NAME, TenantScope
from ops_agent.services.warehouse import NO_ID, utcnow

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class IdentityResolver:
    """Maps a bearer credential to the acting user within a tenant.

    A missing, unknown or foreign credential degrades to the anonymous actor
    instead of failing the request.
    """

    def __init__(self, tokens_collection, users_collection, clock: Callable[[], datetime] = utcnow) -> None:
        self._tokens = tokens_collection
        self._users = users_collection
        self._clock = clock

    def resolve(self, tenant_id: str, authorization: Optional[str]) -> TenantScope:
        anonymous = TenantScope(tenant_id=tenant_id)
        token = self._extract_token(authorization)
        if not token:
            return anonymous
        try:
            record = self._tokens.find_one({"token_hash": hash_token(token), "revoked_at": None}, NO_ID)
            if not record:
                logger.info("Unknown bearer credential", extra={"tenant_id": tenant_id})
                return anonymous
            expires_at = record.get("expires_at")
            if expires_at is not None and expires_at <= self._clock():
                logger.info("Expired bearer credential", extra={"tenant_id": tenant_id})
                return anonymous
            user = self._users.find_one({"id": record["user_id"]}, NO_ID)
        except PyMongoError:
            logger.exception("Auth lookup failed", extra={"tenant_id": tenant_id})
            return anonymous

        if not user:
            return anonymous
        if user.get("tenant_id") != tenant_id:
            logger.warning(
                "Credential belongs to another tenant",
                extra={"tenant_id": tenant_id, "user_id": user.get("id")},
            )
            return anonymous
        display_name = f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()
        return TenantScope(
            tenant_id=tenant_id,
            user_id=user["id"],
            user_display_name=display_name or UNKNOWN_USER_NAME,
        )

    @staticmethod
    def _extract_token(authorization: Optional[str]) -> Optional[str]:
        if not authorization:
            return None
        scheme, _, credential = authorization.strip().partition(" ")
        if scheme.lower() != "bearer":
            return None
        return credential.strip() or None
