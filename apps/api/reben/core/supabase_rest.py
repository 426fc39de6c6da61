from typing import Any

import httpx
from fastapi import HTTPException, status

from reben.core.settings import get_settings

NOTIFICATION_QUEUE_TABLE = "notification_queue"
WEBHOOK_ENDPOINTS_TABLE = "webhook_endpoints"
INTEGRATIONS_TABLE = "integrations_config"
INTEGRATION_LOGS_TABLE = "integration_logs"


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=10.0)


def _rest_url(path: str) -> str:
    settings = get_settings()
    return f"{settings.SUPABASE_URL.rstrip('/')}/rest/v1/{path}"


def supabase_rest_headers(access_token: str) -> dict[str, str]:
    settings = get_settings()
    return {
        "Authorization": f"Bearer {access_token}",
        "apikey": settings.SUPABASE_ANON_KEY,
        "Accept": "application/json",
    }


def supabase_service_role_headers() -> dict[str, str]:
    settings = get_settings()
    service_role_key = settings.SUPABASE_SERVICE_ROLE_KEY
    if not service_role_key or not service_role_key.strip():
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Notification delivery is not configured.",
        )
    return {
        "Authorization": f"Bearer {service_role_key}",
        "apikey": service_role_key,
        "Accept": "application/json",
    }


def _supabase_error_detail(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    for key in ("message", "detail"):
        detail = payload.get(key)
        if isinstance(detail, str) and detail:
            return detail
    return None


def _validated_list_payload(payload: Any, error_message: str) -> list[dict[str, Any]]:
    if not isinstance(payload, list):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error_message)
    for item in payload:
        if not isinstance(item, dict):
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error_message)
    return payload


async def _service_role_request(
    method: str,
    path: str,
    *,
    error_detail: str,
    params: dict[str, str] | None = None,
    payload: Any = None,
    prefer: str | None = None,
) -> httpx.Response:
    headers = supabase_service_role_headers()
    if prefer:
        headers["Prefer"] = prefer

    try:
        async with _client() as client:
            response = await client.request(method, _rest_url(path), params=params, json=payload, headers=headers)
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        detail = _supabase_error_detail(exc.response)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"{error_detail} ({detail})" if detail else error_detail,
        ) from exc
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error_detail) from exc
    return response


async def _service_role_rows(
    method: str,
    path: str,
    *,
    error_detail: str,
    params: dict[str, str] | None = None,
    payload: Any = None,
    prefer: str | None = None,
) -> list[dict[str, Any]]:
    response = await _service_role_request(
        method,
        path,
        error_detail=error_detail,
        params=params,
        payload=payload,
        prefer=prefer,
    )
    return _validated_list_payload(response.json(), f"Invalid response from Supabase: {error_detail}")


async def select_profile(access_token: str, user_id: str) -> dict[str, Any] | None:
    params = {
        "select": "id,tenant_id,role,email",
        "id": f"eq.{user_id}",
        "limit": "1",
    }
    try:
        async with _client() as client:
            response = await client.get(
                _rest_url("profiles"),
                params=params,
                headers=supabase_rest_headers(access_token),
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to fetch profile from Supabase.",
        ) from exc

    rows = _validated_list_payload(response.json(), "Invalid profile response from Supabase.")
    return rows[0] if rows else None


async def insert_notification_item(row: dict[str, Any]) -> dict[str, Any]:
    rows = await _service_role_rows(
        "POST",
        NOTIFICATION_QUEUE_TABLE,
        payload=row,
        prefer="return=representation",
        error_detail="Failed to enqueue notification item.",
    )
    if not rows:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Enqueue returned no notification item.",
        )
    return rows[0]


async def select_due_notification_items(limit: int, now_iso: str) -> list[dict[str, Any]]:
    return await _service_role_rows(
        "GET",
        NOTIFICATION_QUEUE_TABLE,
        params={
            "select": "*",
            "status": "eq.pending",
            "scheduled_at": f"lte.{now_iso}",
            "order": "priority_rank.desc,created_at.asc",
            "limit": str(max(1, limit)),
        },
        error_detail="Failed to fetch due notification items.",
    )


async def claim_notification_item(item_id: str, claimed_at_iso: str) -> bool:
    rows = await _service_role_rows(
        "PATCH",
        NOTIFICATION_QUEUE_TABLE,
        params={"id": f"eq.{item_id}", "status": "eq.pending"},
        payload={"status": "retrying", "updated_at": claimed_at_iso},
        prefer="return=representation",
        error_detail="Failed to claim notification item.",
    )
    return len(rows) == 1


async def update_notification_item(item_id: str, payload: dict[str, Any]) -> None:
    await _service_role_request(
        "PATCH",
        NOTIFICATION_QUEUE_TABLE,
        params={"id": f"eq.{item_id}"},
        payload=payload,
        prefer="return=minimal",
        error_detail="Failed to update notification item.",
    )


async def delete_sent_notification_items(before_iso: str) -> int:
    rows = await _service_role_rows(
        "DELETE",
        NOTIFICATION_QUEUE_TABLE,
        params={"status": "eq.sent", "sent_at": f"lt.{before_iso}", "select": "id"},
        prefer="return=representation",
        error_detail="Failed to purge sent notification items.",
    )
    return len(rows)


async def release_stale_notification_claims(before_iso: str, released_at_iso: str) -> int:
    rows = await _service_role_rows(
        "PATCH",
        NOTIFICATION_QUEUE_TABLE,
        params={"status": "eq.retrying", "updated_at": f"lt.{before_iso}", "select": "id"},
        payload={"status": "pending", "updated_at": released_at_iso},
        prefer="return=representation",
        error_detail="Failed to release stale notification claims.",
    )
    return len(rows)


async def select_notification_items(
    *,
    tenant_id: str | None = None,
    status_value: str | None = None,
    created_after_iso: str | None = None,
    limit: int | None = 50,
) -> list[dict[str, Any]]:
    params = {"select": "*", "order": "created_at.desc"}
    if tenant_id:
        params["tenant_id"] = f"eq.{tenant_id}"
    if status_value:
        params["status"] = f"eq.{status_value}"
    if created_after_iso:
        params["created_at"] = f"gte.{created_after_iso}"
    if limit is not None:
        params["limit"] = str(max(1, limit))
    return await _service_role_rows(
        "GET",
        NOTIFICATION_QUEUE_TABLE,
        params=params,
        error_detail="Failed to fetch notification items.",
    )


async def select_notification_item(item_id: str) -> dict[str, Any] | None:
    rows = await _service_role_rows(
        "GET",
        NOTIFICATION_QUEUE_TABLE,
        params={"select": "*", "id": f"eq.{item_id}", "limit": "1"},
        error_detail="Failed to fetch notification item.",
    )
    return rows[0] if rows else None


async def reopen_failed_notification_item(item_id: str, now_iso: str) -> bool:
    rows = await _service_role_rows(
        "PATCH",
        NOTIFICATION_QUEUE_TABLE,
        params={"id": f"eq.{item_id}", "status": "eq.failed", "select": "id"},
        payload={"status": "pending", "scheduled_at": now_iso, "updated_at": now_iso},
        prefer="return=representation",
        error_detail="Failed to requeue notification item.",
    )
    return len(rows) == 1


async def select_webhook_endpoints(
    tenant_id: str,
    *,
    event_type: str | None = None,
    active_only: bool = False,
) -> list[dict[str, Any]]:
    params = {"select": "*", "tenant_id": f"eq.{tenant_id}", "order": "created_at.asc"}
    if event_type:
        params["events"] = f"cs.{{{event_type}}}"
    if active_only:
        params["is_active"] = "eq.true"
    return await _service_role_rows(
        "GET",
        WEBHOOK_ENDPOINTS_TABLE,
        params=params,
        error_detail="Failed to fetch webhook endpoints.",
    )


async def select_webhook_endpoint(webhook_id: str) -> dict[str, Any] | None:
    rows = await _service_role_rows(
        "GET",
        WEBHOOK_ENDPOINTS_TABLE,
        params={"select": "*", "id": f"eq.{webhook_id}", "limit": "1"},
        error_detail="Failed to fetch webhook endpoint.",
    )
    return rows[0] if rows else None


async def insert_webhook_endpoint(row: dict[str, Any]) -> dict[str, Any]:
    rows = await _service_role_rows(
        "POST",
        WEBHOOK_ENDPOINTS_TABLE,
        payload=row,
        prefer="return=representation",
        error_detail="Failed to create webhook endpoint.",
    )
    if not rows:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Webhook endpoint creation returned no row.",
        )
    return rows[0]


async def update_webhook_endpoint(webhook_id: str, payload: dict[str, Any]) -> dict[str, Any] | None:
    rows = await _service_role_rows(
        "PATCH",
        WEBHOOK_ENDPOINTS_TABLE,
        params={"id": f"eq.{webhook_id}"},
        payload=payload,
        prefer="return=representation",
        error_detail="Failed to update webhook endpoint.",
    )
    return rows[0] if rows else None


async def delete_webhook_endpoint(webhook_id: str) -> bool:
    rows = await _service_role_rows(
        "DELETE",
        WEBHOOK_ENDPOINTS_TABLE,
        params={"id": f"eq.{webhook_id}", "select": "id"},
        prefer="return=representation",
        error_detail="Failed to delete webhook endpoint.",
    )
    return bool(rows)


async def rpc_increment_webhook_counter(webhook_id: str, field: str, triggered_at_iso: str) -> None:
    await _service_role_request(
        "POST",
        "rpc/increment_webhook_counter",
        payload={
            "p_webhook_id": webhook_id,
            "p_field": field,
            "p_triggered_at": triggered_at_iso,
        },
        error_detail="Failed to increment webhook counter.",
    )


async def select_integrations(tenant_id: str, *, active_only: bool = False) -> list[dict[str, Any]]:
    params = {"select": "*", "tenant_id": f"eq.{tenant_id}", "order": "created_at.asc"}
    if active_only:
        params["is_active"] = "eq.true"
    return await _service_role_rows(
        "GET",
        INTEGRATIONS_TABLE,
        params=params,
        error_detail="Failed to fetch integrations.",
    )


async def select_integration(integration_id: str) -> dict[str, Any] | None:
    rows = await _service_role_rows(
        "GET",
        INTEGRATIONS_TABLE,
        params={"select": "*", "id": f"eq.{integration_id}", "limit": "1"},
        error_detail="Failed to fetch integration.",
    )
    return rows[0] if rows else None


async def upsert_integration(row: dict[str, Any]) -> dict[str, Any]:
    rows = await _service_role_rows(
        "POST",
        INTEGRATIONS_TABLE,
        params={"on_conflict": "id"},
        payload=row,
        prefer="resolution=merge-duplicates,return=representation",
        error_detail="Failed to save integration.",
    )
    if not rows:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Integration save returned no row.",
        )
    return rows[0]


async def insert_integration_log(row: dict[str, Any]) -> None:
    await _service_role_request(
        "POST",
        INTEGRATION_LOGS_TABLE,
        payload=row,
        prefer="return=minimal",
        error_detail="Failed to record integration log.",
    )
