from fastapi import Depends, HTTPException, Request

from time_tracking.core.authorization import Actor, Capability, capability_for_role, parse_role
from time_tracking.services.auth_service import verify_token


def _parse_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise HTTPException(status_code=401, detail="Invalid Authorization header")

    return parts[1].strip()


def require_actor(request: Request) -> Actor:
    token = _parse_bearer_token(request)

    try:
        claims = verify_token(token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    try:
        token_company_id = int(claims.get("company_id"))
        role = parse_role(claims.get("role"))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=403, detail="Invalid token claims") from exc

    header_company_id = request.headers.get("X-Company-Id")
    if header_company_id is None:
        raise HTTPException(status_code=403, detail="Missing X-Company-Id header")

    try:
        header_company_id_int = int(header_company_id)
    except ValueError as exc:
        raise HTTPException(status_code=403, detail="Invalid X-Company-Id header") from exc

    if header_company_id_int != token_company_id:
        raise HTTPException(status_code=403, detail="Company mismatch")

    actor = Actor(user_id=str(claims.get("sub")), company_id=token_company_id, role=role)
    request.state.user_id = actor.user_id
    request.state.company_id = actor.company_id
    request.state.role = actor.role.value

    return actor


def require_capability(capability: Capability):
    def dependency(actor: Actor = Depends(require_actor)) -> Actor:
        if capability is Capability.MANAGE_ALL and capability_for_role(actor.role) is not Capability.MANAGE_ALL:
            raise HTTPException(status_code=403, detail="Insufficient role")
        return actor

    return dependency
