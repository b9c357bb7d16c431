"""
Account sharing.

An owner shares access to their account with a recipient, either by
inviting them or by accepting their access request. While a share is active
the recipient can act on the owner's account by sending `X-Acting-For`.
The delegated permissions are the owner's own permissions intersected with
what the share grants: `custom_permissions` when set, otherwise the set of
the share's access level (`full` grants everything the owner has).
"""

import logging
import secrets
from datetime import timedelta
from typing import List, Optional, Tuple

from fastapi import Request
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_backend.api.exceptions import BadRequestException, ForbiddenException, NotFoundException
from portal_backend.cache.invalidation import invalidate_account_share_cache
from portal_backend.interface.account_shares import (
    AccessRequestCreate,
    AccountShareUpdate,
    InvitationResponse,
    ShareInvitationCreate,
)
from portal_backend.model.account_share import AccountShare, AccountShareActivity, AccountShareInvitation
from portal_backend.model.auth import User
from portal_backend.permissions.core import PermissionResolver
from portal_backend.permissions.principal import Principal
from portal_backend.services.activity_log import request_context
from portal_backend.services.notifications import NotificationService
from portal_backend.utils import is_expired, utc_now

logger = logging.getLogger(__name__)

VIEW_ONLY_PERMISSIONS = frozenset([
    "view_profile",
    "view_dashboard",
    "view_notification",
    "view_notification_count",
    "view_media",
    "view_own_activity_log",
    "view_account_sharing",
])

LIMITED_PERMISSIONS = VIEW_ONLY_PERMISSIONS | frozenset([
    "edit_profile",
    "update_theme",
    "update_language",
    "update_timezone",
    "mark_notification_read",
    "add_upload",
    "view_share_activity",
])

ACCESS_LEVEL_PERMISSIONS = {
    "view_only": VIEW_ONLY_PERMISSIONS,
    "limited": LIMITED_PERMISSIONS,
    "full": None,
}

# never delegated, whatever the share grants
NON_DELEGABLE_PERMISSIONS = frozenset([
    "share_account",
    "revoke_account_share",
    "manage_account_sharing",
    "admin_manage_shares",
    "deactivate_account",
    "delete_account",
    "change_email",
])

SHARE_ADMIN_PERMISSION = "admin_manage_shares"
DEFAULT_INVITATION_DAYS = 7


def granted_permissions(access_level: str, custom_permissions: Optional[List[str]], owner_permissions: List[str]) -> List[str]:
    owner = set(owner_permissions) - NON_DELEGABLE_PERMISSIONS
    if custom_permissions is not None:
        granted = set(custom_permissions)
    else:
        level = ACCESS_LEVEL_PERMISSIONS.get(access_level, VIEW_ONLY_PERMISSIONS)
        granted = owner if level is None else set(level)
    return sorted(owner & granted)


def _activity(
    action: str,
    actor_id: Optional[str],
    owner_id: Optional[str],
    recipient_id: Optional[str],
    description: str,
    action_type: str = "info",
    share_id: Optional[str] = None,
    invitation_id: Optional[str] = None,
    request: Optional[Request] = None,
    metadata: Optional[dict] = None,
) -> AccountShareActivity:
    context = request_context(request)
    return AccountShareActivity(
        action=action,
        action_type=action_type,
        actor_id=actor_id,
        owner_id=owner_id,
        recipient_id=recipient_id,
        share_id=share_id,
        invitation_id=invitation_id,
        description=description,
        ip_address=context.get("ip_address"),
        user_agent=context.get("user_agent"),
        meta=metadata,
    )


async def resolve_delegated_principal(db: Session, principal: Principal, owner_id: str, request: Optional[Request] = None) -> Principal:
    """Principal for `principal` acting on `owner_id`'s account through an active share."""
    share = (
        db.query(AccountShare)
        .filter(AccountShare.owner_id == owner_id, AccountShare.recipient_id == principal.user_id)
        .first()
    )
    if share is None or share.status != "active":
        raise ForbiddenException(detail={"message": "No active account share for this account"})

    if is_expired(share.expires_at):
        share.status = "expired"
        db.add(_activity(
            "share_expired", principal.user_id, share.owner_id, share.recipient_id,
            "Account share expired", action_type="warning", share_id=share.id, request=request,
        ))
        db.commit()
        await invalidate_account_share_cache(share.owner_id, share.recipient_id)
        raise ForbiddenException(detail={"message": "Account share has expired"})

    owner = db.query(User).filter(User.id == owner_id).first()
    if owner is None or owner.is_trashed or not owner.is_active:
        raise ForbiddenException(detail={"message": "Shared account is not available"})

    owner_permissions = await PermissionResolver(db).get_user_permissions(owner_id)
    permissions = granted_permissions(share.access_level, share.custom_permissions, owner_permissions)

    share.last_accessed = utc_now()
    db.add(_activity(
        "access_used", principal.user_id, share.owner_id, share.recipient_id,
        "Shared account accessed", action_type="security", share_id=share.id, request=request,
        metadata={"endpoint": request.url.path} if request is not None else None,
    ))
    db.commit()

    logger.info(f"User {principal.user_id} acting for {owner_id} with {share.access_level} access")

    return Principal(
        user_id=owner_id,
        email=owner.email,
        groups=[],
        permissions=permissions,
        acting_for=owner_id,
        actor_id=principal.user_id,
    )


class AccountShareService:

    def __init__(self, db: Session):
        self.db = db

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def _find_user(self, user_id: Optional[str] = None, email: Optional[str] = None) -> Optional[User]:
        if user_id:
            return self.db.query(User).filter(User.id == user_id).first()
        if email:
            return self.db.query(User).filter(func.lower(User.email) == email.lower()).first()
        return None

    def search_users(self, term: str, exclude_user_id: str, limit: int = 10) -> List[User]:
        """Active users matching `term` by name or email, for picking a share recipient."""
        term = term.strip()
        if len(term) < 2:
            return []
        pattern = f"%{term}%"
        return (
            self.db.query(User)
            .filter(
                User.id != exclude_user_id,
                User.is_active.is_(True),
                User.is_trashed.is_(False),
                or_(User.email.ilike(pattern), User.name.ilike(pattern)),
            )
            .order_by(User.name)
            .limit(limit)
            .all()
        )

    def _invitation(self, invitation_id: str) -> AccountShareInvitation:
        invitation = self.db.query(AccountShareInvitation).filter(AccountShareInvitation.id == invitation_id).first()
        if invitation is None:
            raise NotFoundException(detail="Invitation not found")
        return invitation

    def _pending_exists(self, **criteria) -> bool:
        query = self.db.query(AccountShareInvitation.id).filter(AccountShareInvitation.status == "pending")
        for column, value in criteria.items():
            query = query.filter(getattr(AccountShareInvitation, column) == value)
        return query.first() is not None

    def _active_share_exists(self, owner_id: str, recipient_id: str) -> bool:
        return (
            self.db.query(AccountShare.id)
            .filter(
                AccountShare.owner_id == owner_id,
                AccountShare.recipient_id == recipient_id,
                AccountShare.status == "active",
            )
            .first()
            is not None
        )

    async def invite(self, sender: Principal, payload: ShareInvitationCreate, request: Optional[Request] = None) -> AccountShareInvitation:
        recipient = self._find_user(payload.recipient_id, payload.recipient_email)
        if payload.recipient_id and recipient is None:
            raise NotFoundException(detail="Recipient not found")
        recipient_email = recipient.email if recipient else payload.recipient_email

        if (recipient and recipient.id == sender.user_id) or (
            sender.email and recipient_email and recipient_email.lower() == sender.email.lower()
        ):
            raise BadRequestException(detail="You cannot share your account with yourself")

        if recipient and self._active_share_exists(sender.user_id, recipient.id):
            raise BadRequestException(detail="An active share with this user already exists")
        if recipient and self._pending_exists(sender_id=sender.user_id, recipient_id=recipient.id, invitation_type="share"):
            raise BadRequestException(detail="A pending invitation for this user already exists")

        invitation = AccountShareInvitation(
            invitation_type="share",
            sender_id=sender.user_id,
            recipient_id=recipient.id if recipient else None,
            recipient_email=recipient_email,
            access_level=payload.access_level,
            custom_permissions=payload.custom_permissions,
            message=payload.message,
            share_expires_at=payload.share_expires_at,
            invitation_token=secrets.token_urlsafe(32),
            expires_at=utc_now() + timedelta(days=payload.expires_in_days),
        )
        self.db.add(invitation)
        self.db.flush()
        self.db.add(_activity(
            "share_invited", sender.user_id, sender.user_id, invitation.recipient_id,
            f"Account share invitation sent to {recipient_email}",
            invitation_id=invitation.id, request=request,
            metadata={"access_level": payload.access_level},
        ))
        self._commit()

        if recipient is not None:
            await NotificationService(self.db).notify(
                recipient.id,
                "Account Share Invitation",
                f"{sender.email or 'A user'} wants to share their account with you",
                notification_type="account_share",
                link="/account-sharing",
                metadata={"invitation_id": invitation.id},
            )
        await invalidate_account_share_cache(sender.user_id, invitation.recipient_id)
        return invitation

    async def request_access(self, requester: Principal, payload: AccessRequestCreate, request: Optional[Request] = None) -> AccountShareInvitation:
        owner = self._find_user(payload.owner_id, payload.owner_email)
        if owner is None:
            raise NotFoundException(detail="Account owner not found")
        if owner.id == requester.user_id:
            raise BadRequestException(detail="You cannot request access to your own account")
        if self._active_share_exists(owner.id, requester.user_id):
            raise BadRequestException(detail="You already have access to this account")
        if self._pending_exists(sender_id=requester.user_id, target_owner_id=owner.id, invitation_type="request"):
            raise BadRequestException(detail="A pending access request for this account already exists")

        invitation = AccountShareInvitation(
            invitation_type="request",
            sender_id=requester.user_id,
            target_owner_id=owner.id,
            recipient_email=owner.email,
            access_level=payload.access_level,
            message=payload.message,
            invitation_token=secrets.token_urlsafe(32),
            expires_at=utc_now() + timedelta(days=payload.expires_in_days),
        )
        self.db.add(invitation)
        self.db.flush()
        self.db.add(_activity(
            "access_request_sent", requester.user_id, owner.id, requester.user_id,
            f"Access request sent to {owner.email}",
            invitation_id=invitation.id, request=request,
            metadata={"access_level": payload.access_level},
        ))
        self._commit()

        await NotificationService(self.db).notify(
            owner.id,
            "Account Access Request",
            f"{requester.email or 'A user'} requested access to your account",
            notification_type="account_share",
            link="/account-sharing",
            metadata={"invitation_id": invitation.id},
        )
        await invalidate_account_share_cache(owner.id, requester.user_id)
        return invitation

    def get_invitation_by_token(self, token: str) -> AccountShareInvitation:
        invitation = (
            self.db.query(AccountShareInvitation)
            .filter(AccountShareInvitation.invitation_token == token)
            .first()
        )
        if invitation is None:
            raise NotFoundException(detail="Invitation not found")
        return invitation

    async def respond(
        self,
        token: str,
        response: InvitationResponse,
        principal: Principal,
        request: Optional[Request] = None,
    ) -> Tuple[AccountShareInvitation, Optional[AccountShare]]:
        invitation = self.get_invitation_by_token(token)

        if invitation.status != "pending":
            raise BadRequestException(detail=f"This invitation has already been {invitation.status}")

        if is_expired(invitation.expires_at):
            invitation.status = "expired"
            self._commit()
            raise BadRequestException(detail="This invitation has expired")

        is_request = invitation.invitation_type == "request"
        if is_request:
            if invitation.target_owner_id != principal.user_id:
                raise ForbiddenException(detail="You are not authorized to respond to this access request")
        else:
            is_recipient = invitation.recipient_id == principal.user_id or (
                invitation.recipient_email is not None
                and principal.email is not None
                and invitation.recipient_email.lower() == principal.email.lower()
            )
            if not is_recipient:
                raise ForbiddenException(detail="You are not authorized to respond to this invitation")

        if is_request:
            owner_id, recipient_id = invitation.target_owner_id, invitation.sender_id
        else:
            owner_id, recipient_id = invitation.sender_id, principal.user_id

        share = None
        if response.accept:
            access_level = (response.access_level if is_request and response.access_level else invitation.access_level)
            custom_permissions = (
                response.custom_permissions
                if is_request and response.custom_permissions is not None
                else invitation.custom_permissions
            )

            share = (
                self.db.query(AccountShare)
                .filter(AccountShare.owner_id == owner_id, AccountShare.recipient_id == recipient_id)
                .first()
            )
            if share is None:
                share = AccountShare(owner_id=owner_id, recipient_id=recipient_id)
                self.db.add(share)
            share.status = "active"
            share.access_level = access_level
            share.custom_permissions = custom_permissions
            share.expires_at = invitation.share_expires_at
            share.revoked_at = None
            self.db.flush()

            invitation.share_id = share.id
            if not is_request and invitation.recipient_id is None:
                invitation.recipient_id = principal.user_id

        invitation.status = "accepted" if response.accept else "declined"
        invitation.responded_at = utc_now()

        if is_request:
            action = "access_request_accepted" if response.accept else "access_request_declined"
            label = "Access request"
        else:
            action = "share_accepted" if response.accept else "share_declined"
            label = "Share invitation"
        verb = "accepted" if response.accept else "declined"

        self.db.add(_activity(
            action, principal.user_id, owner_id, recipient_id, f"{label} {verb}",
            share_id=share.id if share else None, invitation_id=invitation.id, request=request,
        ))
        self._commit()

        await NotificationService(self.db).notify(
            invitation.sender_id,
            "Invitation Accepted" if response.accept else "Invitation Declined",
            f"{principal.email or 'A user'} has {verb} your {'access request' if is_request else 'account share invitation'}",
            notification_type="account_share",
            priority="normal" if response.accept else "low",
            link="/account-sharing",
            metadata={"invitation_id": invitation.id, "accepted": response.accept},
        )
        await invalidate_account_share_cache(owner_id, recipient_id)
        logger.info(f"Invitation {invitation.id} {verb} by {principal.user_id}")
        return invitation, share

    async def cancel_invitation(self, invitation_id: str, principal: Principal, request: Optional[Request] = None) -> AccountShareInvitation:
        invitation = self._invitation(invitation_id)
        if invitation.sender_id != principal.user_id:
            raise ForbiddenException(detail="Only the sender can cancel this invitation")
        if invitation.status != "pending":
            raise BadRequestException(detail=f"This invitation has already been {invitation.status}")

        invitation.status = "cancelled"
        invitation.responded_at = utc_now()
        self.db.add(_activity(
            "share_cancelled", principal.user_id,
            invitation.target_owner_id or invitation.sender_id,
            invitation.recipient_id or invitation.sender_id,
            "Invitation cancelled", invitation_id=invitation.id, request=request,
        ))
        self._commit()
        await invalidate_account_share_cache(invitation.sender_id, invitation.recipient_id, invitation.target_owner_id)
        return invitation

    async def resend_invitation(self, invitation_id: str, principal: Principal, request: Optional[Request] = None) -> AccountShareInvitation:
        invitation = self._invitation(invitation_id)
        if invitation.sender_id != principal.user_id:
            raise ForbiddenException(detail="Only the sender can resend this invitation")
        if invitation.status not in ("pending", "expired"):
            raise BadRequestException(detail=f"This invitation has already been {invitation.status}")

        invitation.status = "pending"
        invitation.invitation_token = secrets.token_urlsafe(32)
        invitation.expires_at = utc_now() + timedelta(days=DEFAULT_INVITATION_DAYS)
        self.db.add(_activity(
            "share_renewed", principal.user_id,
            invitation.target_owner_id or invitation.sender_id,
            invitation.recipient_id or invitation.sender_id,
            "Invitation resent", invitation_id=invitation.id, request=request,
        ))
        self._commit()
        await invalidate_account_share_cache(invitation.sender_id, invitation.recipient_id, invitation.target_owner_id)
        return invitation

    def list_invitations(self, principal: Principal, direction: str = "received", status: Optional[str] = None) -> List[AccountShareInvitation]:
        query = self.db.query(AccountShareInvitation)
        if direction == "sent":
            query = query.filter(AccountShareInvitation.sender_id == principal.user_id)
        else:
            received = or_(
                AccountShareInvitation.recipient_id == principal.user_id,
                AccountShareInvitation.target_owner_id == principal.user_id,
            )
            if principal.email:
                received = or_(received, func.lower(AccountShareInvitation.recipient_email) == principal.email.lower())
            query = query.filter(received, AccountShareInvitation.sender_id != principal.user_id)
        if status:
            query = query.filter(AccountShareInvitation.status == status)
        return query.order_by(AccountShareInvitation.created_at.desc()).all()

    def list_owned(self, user_id: str) -> List[AccountShare]:
        return (
            self.db.query(AccountShare)
            .filter(AccountShare.owner_id == user_id)
            .order_by(AccountShare.created_at.desc())
            .all()
        )

    def list_received(self, user_id: str) -> List[AccountShare]:
        return (
            self.db.query(AccountShare)
            .filter(AccountShare.recipient_id == user_id)
            .order_by(AccountShare.created_at.desc())
            .all()
        )

    def get_share(self, share_id: str, principal: Principal) -> AccountShare:
        share = self.db.query(AccountShare).filter(AccountShare.id == share_id).first()
        if share is None:
            raise NotFoundException(detail="Account share not found")
        if principal.user_id not in (share.owner_id, share.recipient_id) and not principal.permitted(SHARE_ADMIN_PERMISSION):
            raise ForbiddenException(detail="You do not have access to this share")
        return share

    async def update_share(self, share_id: str, payload: AccountShareUpdate, principal: Principal, request: Optional[Request] = None) -> AccountShare:
        share = self.get_share(share_id, principal)
        if share.owner_id != principal.user_id:
            raise ForbiddenException(detail="Only the owner can update this share")

        changes = payload.model_dump(exclude_unset=True)
        for key, value in changes.items():
            setattr(share, key, value)
        if "expires_at" in changes and share.status == "expired" and not is_expired(share.expires_at):
            share.status = "active"

        self.db.add(_activity(
            "permissions_updated", principal.user_id, share.owner_id, share.recipient_id,
            "Share settings updated", share_id=share.id, request=request,
            metadata={k: v for k, v in changes.items() if k != "expires_at"},
        ))
        self._commit()
        self.db.refresh(share)
        await invalidate_account_share_cache(share.owner_id, share.recipient_id)
        return share

    async def revoke_share(self, share_id: str, principal: Principal, request: Optional[Request] = None) -> AccountShare:
        share = self.get_share(share_id, principal)
        if share.owner_id != principal.user_id and not principal.permitted(SHARE_ADMIN_PERMISSION):
            raise ForbiddenException(detail="Only the owner can revoke this share")
        if share.status == "revoked":
            raise BadRequestException(detail="This share has already been revoked")

        share.status = "revoked"
        share.revoked_at = utc_now()
        self.db.add(_activity(
            "share_revoked", principal.user_id, share.owner_id, share.recipient_id,
            "Account share revoked", action_type="security", share_id=share.id, request=request,
        ))
        self._commit()

        await NotificationService(self.db).notify(
            share.recipient_id,
            "Account Access Revoked",
            "Your access to a shared account has been revoked",
            notification_type="account_share",
            priority="high",
            link="/account-sharing",
            metadata={"share_id": share.id},
        )
        await invalidate_account_share_cache(share.owner_id, share.recipient_id)
        return share

    async def leave_share(self, share_id: str, principal: Principal, request: Optional[Request] = None) -> AccountShare:
        share = self.get_share(share_id, principal)
        if principal.is_delegated:
            raise ForbiddenException(detail="Shares cannot be left through a shared account")
        if share.recipient_id != principal.user_id:
            raise ForbiddenException(detail="Only the recipient can leave this share")
        if share.status != "active":
            raise BadRequestException(detail="This share is not active")

        share.status = "revoked"
        share.revoked_at = utc_now()
        self.db.add(_activity(
            "share_left", principal.user_id, share.owner_id, share.recipient_id,
            "Recipient left the account share", share_id=share.id, request=request,
        ))
        self._commit()
        await invalidate_account_share_cache(share.owner_id, share.recipient_id)
        return share

    def list_activity(self, user_id: str, share_id: Optional[str] = None, limit: int = 50, offset: int = 0) -> Tuple[List[AccountShareActivity], int]:
        query = self.db.query(AccountShareActivity).filter(
            or_(
                AccountShareActivity.owner_id == user_id,
                AccountShareActivity.recipient_id == user_id,
                AccountShareActivity.actor_id == user_id,
            )
        )
        if share_id:
            query = query.filter(AccountShareActivity.share_id == share_id)
        total = query.order_by(None).count()
        rows = query.order_by(AccountShareActivity.created_at.desc()).limit(limit).offset(offset).all()
        return rows, total

    def statistics(self, user_id: str) -> dict:
        def by_status(column):
            rows = (
                self.db.query(AccountShare.status, func.count(AccountShare.id))
                .filter(column == user_id)
                .group_by(AccountShare.status)
                .all()
            )
            return {status: count for status, count in rows}

        pending = self.db.query(AccountShareInvitation).filter(AccountShareInvitation.status == "pending")
        return {
            "shared_by_me": by_status(AccountShare.owner_id),
            "shared_with_me": by_status(AccountShare.recipient_id),
            "pending_sent": pending.filter(AccountShareInvitation.sender_id == user_id).count(),
            "pending_received": pending.filter(
                or_(
                    AccountShareInvitation.recipient_id == user_id,
                    AccountShareInvitation.target_owner_id == user_id,
                ),
                AccountShareInvitation.sender_id != user_id,
            ).count(),
        }
