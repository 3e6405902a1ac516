from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from jobchat.core.auth import PartyKind, Principal, parse_party_kind
from jobchat.core.config import Settings, get_settings


async def get_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication required",
        )

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")

    if not settings.auth_url or not settings.auth_anon_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="auth provider is not configured",
        )

    account = await _fetch_account(
        auth_url=settings.auth_url,
        auth_anon_key=settings.auth_anon_key,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    account_id = account.get("id")
    if not isinstance(account_id, str) or not account_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid or expired token")

    party_kind = _resolve_party_kind(account)
    if party_kind is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="account type is not recognised")

    return Principal(subject=account_id, party_kind=party_kind)


async def _fetch_account(
    *,
    auth_url: str,
    auth_anon_key: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": auth_anon_key,
    }
    url = f"{auth_url.rstrip('/')}/auth/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="auth verification unavailable",
        ) from exc

    if response.status_code in {401, 403}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid or expired token")
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="auth verification failed",
        )

    return response.json()


def _resolve_party_kind(account: dict[str, Any]) -> PartyKind | None:
    # Only app_metadata is trusted; user_metadata is writable by the account holder.
    app_metadata = account.get("app_metadata")
    if not isinstance(app_metadata, dict):
        return None
    return parse_party_kind(app_metadata.get("account_type"))
