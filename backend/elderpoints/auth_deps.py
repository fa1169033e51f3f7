from __future__ import annotations
import uuid
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from elderpoints.db import get_session
from elderpoints.errors import Unauthorized, PermissionDeniedError
from elderpoints.security import decode_token
from elderpoints.models.account import Account, STAFF_ROLES

security = HTTPBearer(auto_error=False)

async def get_current_account(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_session)
) -> Account:
    if credentials is None:
        raise Unauthorized("Missing bearer token")
    try:
        data = decode_token(credentials.credentials)
        account_id = uuid.UUID(str(data.get("sub")))
    except Exception:
        raise Unauthorized("Invalid token")
    if data.get("type") != "access":
        raise Unauthorized("Wrong token type")
    account = await session.get(Account, account_id)
    if not account:
        raise Unauthorized("Account not found")
    # End the read transaction; handlers that fan out open their own sessions
    await session.commit()
    return account

async def require_staff(account: Account = Depends(get_current_account)) -> Account:
    if account.role not in STAFF_ROLES:
        raise PermissionDeniedError("Staff only")
    return account
