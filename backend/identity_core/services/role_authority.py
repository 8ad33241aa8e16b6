"""Role authority: the only writer of account roles.

Roles form a total order user < admin < super_admin. At most one account
holds super_admin at any time. The partial unique index
uq_accounts_single_super_admin enforces that in the store; this service
adds the authorization rules and turns store rejections into classified
errors.

Super admin transfer runs as one transaction of two conditional updates:
the current holder is demoted to admin first (guarded on still being
super_admin), then the target is promoted (guarded on its role being
unchanged). Demoting first keeps the partial index satisfied after each
statement, and a concurrent transfer finds the guard already spent.
"""

import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from identity_core.core.errors import (
    ConflictError,
    ForbiddenError,
    InvariantViolationError,
    NotFoundError,
    UnauthorizedError,
)
from identity_core.core.validation import clean_display_name
from identity_core.models.account import Account, Role
from identity_core.repositories.account_repository import AccountRepository
from identity_core.schemas.account import AccountPage, AccountPublic, MessageResult

logger = logging.getLogger(__name__)

_MAX_PER_PAGE = 100


def _single_super_admin() -> InvariantViolationError:
    return InvariantViolationError(
        code="SUPER_ADMIN_EXISTS",
        message="Only one super admin allowed",
    )


class RoleAuthorityService:
    """Role transitions and admin-only account operations.

    Requesters are the authenticated accounts making the call, typically
    as returned by AccountLifecycleService.authenticate().

    Args:
        db: Async database session. The service commits on success.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    # -----------------------------------------------------------------------
    # Authorization
    # -----------------------------------------------------------------------

    async def _require_role(
        self, requester: Account, minimum: Role, message: str
    ) -> Role:
        """Re-read the requester's current role and enforce a minimum.

        Raises:
            UnauthorizedError: Requester no longer exists.
            ForbiddenError: Requester's current role is below ``minimum``.
        """
        current = await AccountRepository.get_by_id(self._db, requester.id)
        if current is None:
            raise UnauthorizedError()
        role = current.role_enum
        if not role.at_least(minimum):
            logger.warning(
                "Role check failed",
                extra={
                    "requester_id": str(requester.id),
                    "required_role": minimum.value,
                },
            )
            raise ForbiddenError(message)
        return role

    async def _get_target(self, target_id: uuid.UUID) -> Account:
        target = await AccountRepository.get_by_id(self._db, target_id)
        if target is None:
            raise NotFoundError("Account", str(target_id))
        return target

    async def _reload_public(self, account_id: uuid.UUID) -> AccountPublic:
        account = await self._get_target(account_id)
        return AccountPublic.model_validate(account)

    # -----------------------------------------------------------------------
    # Role transitions
    # -----------------------------------------------------------------------

    async def promote_to_admin(
        self, *, requester: Account, target_id: uuid.UUID
    ) -> AccountPublic:
        """Raise a user to admin.

        Args:
            requester: Must currently hold super_admin.
            target_id: Account to promote.

        Returns:
            The promoted account.

        Raises:
            ForbiddenError: Requester is not the super admin.
            NotFoundError: Target does not exist.
            ConflictError: ALREADY_ADMIN if the target is admin or above.
        """
        await self._require_role(
            requester, Role.SUPER_ADMIN, "Only the super admin can promote admins"
        )
        target = await self._get_target(target_id)

        if target.role_enum.at_least(Role.ADMIN):
            raise ConflictError(
                code="ALREADY_ADMIN",
                message="Account already has admin privileges",
            )

        changed = await AccountRepository.transition_role(
            self._db, target_id, from_role=Role.USER, to_role=Role.ADMIN
        )
        if not changed:
            await self._db.rollback()
            raise ConflictError(
                code="ALREADY_ADMIN",
                message="Account already has admin privileges",
            )

        await self._db.commit()
        logger.info(
            "Promoted account to admin",
            extra={"requester_id": str(requester.id), "target_id": str(target_id)},
        )
        return await self._reload_public(target_id)

    async def promote_to_super_admin(
        self, *, requester: Account, target_id: uuid.UUID
    ) -> AccountPublic:
        """Transfer the super admin title to another account.

        The requester keeps admin privileges after the transfer. The
        requester's stored role must be super_admin; the guarded demotion
        then decides between concurrent transfers, so the losing one fails
        with an invariant violation.

        Args:
            requester: The current super admin.
            target_id: Account receiving the title.

        Returns:
            The new super admin.

        Raises:
            ForbiddenError: Requester does not currently hold the title.
            NotFoundError: Target does not exist.
            InvariantViolationError: ALREADY_SUPER_ADMIN for a self-transfer;
                SUPER_ADMIN_EXISTS if the transfer would leave two super
                admins or the requester lost the title meanwhile.
        """
        await self._require_role(
            requester, Role.SUPER_ADMIN, "Only the super admin can transfer the title"
        )

        target = await self._get_target(target_id)
        if target.id == requester.id:
            raise InvariantViolationError(
                code="ALREADY_SUPER_ADMIN",
                message="Account is already the super admin",
            )

        others = await AccountRepository.count_where(
            self._db,
            Account.role == Role.SUPER_ADMIN.value,
            Account.id.not_in([requester.id, target.id]),
        )
        if others:
            raise _single_super_admin()

        target_role = target.role_enum
        try:
            demoted = await AccountRepository.transition_role(
                self._db,
                requester.id,
                from_role=Role.SUPER_ADMIN,
                to_role=Role.ADMIN,
            )
            if not demoted:
                await self._db.rollback()
                raise _single_super_admin()

            promoted = await AccountRepository.transition_role(
                self._db,
                target_id,
                from_role=target_role,
                to_role=Role.SUPER_ADMIN,
            )
            if not promoted:
                await self._db.rollback()
                raise _single_super_admin()
        except IntegrityError as exc:
            await self._db.rollback()
            raise _single_super_admin() from exc

        await self._db.commit()
        logger.info(
            "Super admin title transferred",
            extra={"previous_id": str(requester.id), "target_id": str(target_id)},
        )
        return await self._reload_public(target_id)

    async def revoke_admin(
        self, *, requester: Account, target_id: uuid.UUID
    ) -> AccountPublic:
        """Lower an admin back to user.

        Raises:
            ForbiddenError: Requester is not the super admin.
            NotFoundError: Target does not exist.
            InvariantViolationError: CANNOT_REVOKE_SUPER_ADMIN for the super
                admin; NOT_ADMIN if the target is a plain user.
        """
        await self._require_role(
            requester, Role.SUPER_ADMIN, "Only the super admin can revoke admins"
        )
        target = await self._get_target(target_id)

        if target.role_enum is Role.SUPER_ADMIN:
            raise InvariantViolationError(
                code="CANNOT_REVOKE_SUPER_ADMIN",
                message="The super admin cannot be demoted; transfer the title instead",
            )
        if target.role_enum is not Role.ADMIN:
            raise InvariantViolationError(
                code="NOT_ADMIN",
                message="Account is not an admin",
            )

        changed = await AccountRepository.transition_role(
            self._db, target_id, from_role=Role.ADMIN, to_role=Role.USER
        )
        if not changed:
            await self._db.rollback()
            raise InvariantViolationError(
                code="NOT_ADMIN",
                message="Account is not an admin",
            )

        await self._db.commit()
        logger.info(
            "Revoked admin role",
            extra={"requester_id": str(requester.id), "target_id": str(target_id)},
        )
        return await self._reload_public(target_id)

    # -----------------------------------------------------------------------
    # Admin account management
    # -----------------------------------------------------------------------

    async def list_accounts(
        self,
        *,
        requester: Account,
        page: int = 1,
        per_page: int = 50,
        role: Role | None = None,
    ) -> AccountPage:
        """List accounts with pagination, newest first.

        Args:
            requester: Must be admin or above.
            page: Page number (1-based).
            per_page: Items per page (max 100).
            role: Filter by role.

        Returns:
            One page of accounts and the total count.
        """
        await self._require_role(requester, Role.ADMIN, "Admin access required")
        page = max(page, 1)
        per_page = max(min(per_page, _MAX_PER_PAGE), 1)

        predicates = [] if role is None else [Account.role == role.value]
        total = await AccountRepository.count_where(self._db, *predicates)
        accounts = await AccountRepository.find_where(
            self._db,
            *predicates,
            offset=(page - 1) * per_page,
            limit=per_page,
        )
        return AccountPage(
            items=[AccountPublic.model_validate(a) for a in accounts],
            total=total,
            page=page,
            per_page=per_page,
        )

    async def find_by_email(self, *, requester: Account, email: str) -> AccountPublic:
        """Look up one account by email.

        Raises:
            ForbiddenError: Requester is below admin.
            NotFoundError: No account with this email.
        """
        await self._require_role(requester, Role.ADMIN, "Admin access required")
        account = await AccountRepository.get_by_email(self._db, email)
        if account is None:
            raise NotFoundError("Account")
        return AccountPublic.model_validate(account)

    async def get_super_admin(self, *, requester: Account) -> AccountPublic:
        """Return the current super admin.

        Raises:
            NotFoundError: Nobody holds the title.
        """
        await self._require_role(requester, Role.ADMIN, "Admin access required")
        account = await AccountRepository.get_super_admin(self._db)
        if account is None:
            raise NotFoundError("Super admin")
        return AccountPublic.model_validate(account)

    async def has_super_admin(self, *, requester: Account) -> bool:
        await self._require_role(requester, Role.ADMIN, "Admin access required")
        return await AccountRepository.get_super_admin(self._db) is not None

    async def rename_account(
        self, *, requester: Account, target_id: uuid.UUID, name: str
    ) -> AccountPublic:
        """Change another account's display name.

        Raises:
            ForbiddenError: Requester is below admin.
            ValidationError: Blank or over-long name.
            NotFoundError: Target does not exist.
        """
        await self._require_role(requester, Role.ADMIN, "Admin access required")
        cleaned = clean_display_name(name)

        account = await AccountRepository.update(self._db, target_id, name=cleaned)
        if account is None:
            await self._db.rollback()
            raise NotFoundError("Account", str(target_id))

        public = AccountPublic.model_validate(account)
        await self._db.commit()
        return public

    async def delete_account(
        self, *, requester: Account, target_id: uuid.UUID
    ) -> MessageResult:
        """Delete an account.

        Admins may delete plain users; the super admin may delete any
        account except itself.

        Raises:
            ForbiddenError: Requester is below admin, or the target's role
                is out of the requester's reach.
            ConflictError: CANNOT_DELETE_SELF.
            NotFoundError: Target does not exist.
        """
        requester_role = await self._require_role(
            requester, Role.ADMIN, "Admin access required"
        )
        if target_id == requester.id:
            raise ConflictError(
                code="CANNOT_DELETE_SELF",
                message="Cannot delete your own account",
            )

        target = await self._get_target(target_id)
        if target.role_enum is Role.SUPER_ADMIN:
            raise ForbiddenError("The super admin cannot be deleted")
        if requester_role is Role.ADMIN and target.role_enum is not Role.USER:
            raise ForbiddenError("Admins can only delete regular users")

        await AccountRepository.delete(self._db, target_id)
        await self._db.commit()
        logger.info(
            "Deleted account",
            extra={"requester_id": str(requester.id), "target_id": str(target_id)},
        )
        return MessageResult(message="Account deleted")


async def bootstrap_super_admin(db: AsyncSession, email: str) -> AccountPublic:
    """Grant the super admin title when nobody holds it yet.

    Operator entry point for a fresh deployment; no requester exists yet.
    Idempotent when the account already is the super admin.

    Raises:
        NotFoundError: No account with this email.
        InvariantViolationError: SUPER_ADMIN_EXISTS if another account
            already holds the title.
    """
    account = await AccountRepository.get_by_email(db, email)
    if account is None:
        raise NotFoundError("Account")

    holder = await AccountRepository.get_super_admin(db)
    if holder is not None:
        if holder.id == account.id:
            return AccountPublic.model_validate(account)
        raise _single_super_admin()

    account_id = account.id
    try:
        promoted = await AccountRepository.transition_role(
            db, account_id, from_role=account.role_enum, to_role=Role.SUPER_ADMIN
        )
    except IntegrityError as exc:
        await db.rollback()
        raise _single_super_admin() from exc
    if not promoted:
        await db.rollback()
        raise _single_super_admin()

    await db.commit()
    logger.info("Bootstrapped super admin", extra={"account_id": str(account_id)})
    account = await AccountRepository.get_by_id(db, account_id)
    return AccountPublic.model_validate(account)
