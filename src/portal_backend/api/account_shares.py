import logging
from typing import Annotated, List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from portal_backend.api.crud import to_dict
from portal_backend.cache import keys
from portal_backend.cache.middleware import cached
from portal_backend.database import get_db
from portal_backend.interface.account_shares import (
    AccessRequestCreate,
    AccountShareGet,
    AccountShareUpdate,
    InvitationGet,
    InvitationResponse,
    InvitationStatus,
    ShareActivityGet,
    ShareCandidate,
    ShareInvitationCreate,
    ShareStatistics,
)
from portal_backend.permissions.auth import require_permissions
from portal_backend.permissions.principal import Principal
from portal_backend.services.account_shares import AccountShareService

logger = logging.getLogger(__name__)

account_share_router = APIRouter()


# invitations and access requests

@account_share_router.post("/invitations", response_model=InvitationGet, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    permissions: Annotated[Principal, Depends(require_permissions("share_account"))],
    entity: ShareInvitationCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    return await AccountShareService(db).invite(permissions, entity, request)


@account_share_router.post("/requests", response_model=InvitationGet, status_code=status.HTTP_201_CREATED)
async def create_access_request(
    permissions: Annotated[Principal, Depends(require_permissions("request_account_access"))],
    entity: AccessRequestCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    return await AccountShareService(db).request_access(permissions, entity, request)


@account_share_router.get("/invitations", response_model=List[InvitationGet])
async def list_invitations(
    permissions: Annotated[Principal, Depends(require_permissions("view_account_sharing"))],
    direction: Literal["sent", "received"] = "received",
    invitation_status: Optional[InvitationStatus] = Query(None, alias="status"),
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    status_value = invitation_status.value if invitation_status else None
    kind = f"invitations:{direction}:{status_value or 'all'}"

    async def fetch():
        invitations = AccountShareService(db).list_invitations(permissions, direction, status_value)
        return [to_dict(InvitationGet, i) for i in invitations]

    return await cached(keys.account_shares_key(kind, permissions.user_id), fetch, "short", force_refresh=refresh)


@account_share_router.get("/invitations/token/{token}", response_model=InvitationGet)
async def get_invitation(
    permissions: Annotated[Principal, Depends(require_permissions("view_account_sharing"))],
    token: str,
    db: Session = Depends(get_db),
):
    return AccountShareService(db).get_invitation_by_token(token)


@account_share_router.post("/invitations/token/{token}/respond", response_model=InvitationGet)
async def respond_to_invitation(
    permissions: Annotated[Principal, Depends(require_permissions("accept_account_share"))],
    token: str,
    entity: InvitationResponse,
    request: Request,
    db: Session = Depends(get_db),
):
    invitation, _ = await AccountShareService(db).respond(token, entity, permissions, request)
    return invitation


@account_share_router.post("/invitations/{invitation_id}/cancel", response_model=InvitationGet)
async def cancel_invitation(
    permissions: Annotated[Principal, Depends(require_permissions("share_account", "request_account_access"))],
    invitation_id: str,
    request: Request,
    db: Session = Depends(get_db),
):
    return await AccountShareService(db).cancel_invitation(invitation_id, permissions, request)


@account_share_router.post("/invitations/{invitation_id}/resend", response_model=InvitationGet)
async def resend_invitation(
    permissions: Annotated[Principal, Depends(require_permissions("share_account", "request_account_access"))],
    invitation_id: str,
    request: Request,
    db: Session = Depends(get_db),
):
    return await AccountShareService(db).resend_invitation(invitation_id, permissions, request)


# shares

@account_share_router.get("/owned", response_model=List[AccountShareGet])
async def list_owned_shares(
    permissions: Annotated[Principal, Depends(require_permissions("view_account_sharing"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return [to_dict(AccountShareGet, s) for s in AccountShareService(db).list_owned(permissions.user_id)]

    return await cached(keys.account_shares_key("owned", permissions.user_id), fetch, "short", force_refresh=refresh)


@account_share_router.get("/received", response_model=List[AccountShareGet])
async def list_received_shares(
    permissions: Annotated[Principal, Depends(require_permissions("view_account_sharing"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return [to_dict(AccountShareGet, s) for s in AccountShareService(db).list_received(permissions.user_id)]

    return await cached(keys.account_shares_key("received", permissions.user_id), fetch, "short", force_refresh=refresh)


@account_share_router.get("/statistics", response_model=ShareStatistics)
async def share_statistics(
    permissions: Annotated[Principal, Depends(require_permissions("view_account_sharing"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return AccountShareService(db).statistics(permissions.user_id)

    return await cached(keys.account_shares_key("statistics", permissions.user_id), fetch, "short", force_refresh=refresh)


@account_share_router.get("/activity", response_model=List[ShareActivityGet])
async def list_share_activity(
    permissions: Annotated[Principal, Depends(require_permissions("view_share_activity"))],
    response: Response,
    share_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    rows, total = AccountShareService(db).list_activity(permissions.user_id, share_id, limit, offset)
    response.headers["X-Total-Count"] = str(total)
    return rows


@account_share_router.get("/search-users", response_model=List[ShareCandidate])
async def search_users(
    permissions: Annotated[Principal, Depends(require_permissions("share_account"))],
    q: str = Query("", max_length=255),
    db: Session = Depends(get_db),
):
    return AccountShareService(db).search_users(q, exclude_user_id=permissions.user_id)


@account_share_router.get("/{share_id}", response_model=AccountShareGet)
async def get_share(
    permissions: Annotated[Principal, Depends(require_permissions("view_account_sharing"))],
    share_id: str,
    db: Session = Depends(get_db),
):
    return AccountShareService(db).get_share(share_id, permissions)


@account_share_router.patch("/{share_id}", response_model=AccountShareGet)
async def update_share(
    permissions: Annotated[Principal, Depends(require_permissions("share_account"))],
    share_id: str,
    entity: AccountShareUpdate,
    request: Request,
    db: Session = Depends(get_db),
):
    return await AccountShareService(db).update_share(share_id, entity, permissions, request)


@account_share_router.post("/{share_id}/revoke", response_model=AccountShareGet)
async def revoke_share(
    permissions: Annotated[Principal, Depends(require_permissions("revoke_account_share", "admin_manage_shares"))],
    share_id: str,
    request: Request,
    db: Session = Depends(get_db),
):
    return await AccountShareService(db).revoke_share(share_id, permissions, request)


@account_share_router.post("/{share_id}/leave", response_model=AccountShareGet)
async def leave_share(
    permissions: Annotated[Principal, Depends(require_permissions("view_account_sharing"))],
    share_id: str,
    request: Request,
    db: Session = Depends(get_db),
):
    return await AccountShareService(db).leave_share(share_id, permissions, request)
