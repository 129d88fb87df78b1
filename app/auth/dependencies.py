from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import Account
from app.auth.schemas import CurrentUser
from app.auth.security import decode_access_token
from app.core.enums import AccountRole
from app.db.session import get_db


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

BULK_UPLOAD_ROLES = (AccountRole.SUPERADMIN.value, AccountRole.ADMIN.value)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated account from the access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(token)
    if payload is None:
        raise credentials_exception

    account_id = payload.get("user_id") or payload.get("sub")
    if not account_id:
        raise credentials_exception

    account = await db.get(Account, str(account_id))
    if not account or not account.is_active:
        raise credentials_exception

    return CurrentUser(id=account.id, role=account.role, center_id=account.center_id)


async def require_bulk_uploader(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Require admin or superadmin. Bulk enrollment creates accounts on behalf of a center."""
    if current_user.role not in BULK_UPLOAD_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins can perform bulk uploads",
        )
    return current_user
