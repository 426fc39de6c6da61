from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from fastapi import Depends, HTTPException, status

from reben.core.supabase_jwt import VerifiedSupabaseAuth, unauthorized, verify_supabase_auth
from reben.core.supabase_rest import select_profile

TenantRole = Literal["EMPLOYEE", "MANAGER", "HR_ADMIN", "SUPER_ADMIN"]

role_rank: dict[str, int] = {
    "EMPLOYEE": 1,
    "MANAGER": 2,
    "HR_ADMIN": 3,
    "SUPER_ADMIN": 4,
}

supabase_auth_dependency = Depends(verify_supabase_auth)


@dataclass(frozen=True)
class TenantContext:
    tenant_id: str
    user_id: str
    role: TenantRole


def _normalize_role(value: object) -> TenantRole:
    normalized = str(value or "").strip().upper()
    if normalized not in role_rank:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return normalized  # type: ignore[return-value]


async def resolve_tenant_context(auth: VerifiedSupabaseAuth) -> TenantContext:
    user_id = auth.user_id
    if user_id is None:
        raise unauthorized()

    profile = await select_profile(auth.access_token, user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    tenant_id = profile.get("tenant_id")
    if not isinstance(tenant_id, str) or not tenant_id.strip():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    return TenantContext(tenant_id=tenant_id.strip(), user_id=user_id, role=_normalize_role(profile.get("role")))


async def current_tenant(auth: VerifiedSupabaseAuth = supabase_auth_dependency) -> TenantContext:
    return await resolve_tenant_context(auth)


def require_role(min_role: TenantRole):
    async def dependency(auth: VerifiedSupabaseAuth = supabase_auth_dependency) -> TenantContext:
        context = await resolve_tenant_context(auth)
        if role_rank[context.role] < role_rank[min_role]:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return context

    return dependency


require_manager = require_role("MANAGER")
require_hr_admin = require_role("HR_ADMIN")
