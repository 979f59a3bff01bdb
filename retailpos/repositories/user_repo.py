"""User repository: the credential store behind login and the reset flows."""

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from retailpos.core.exceptions import InfrastructureFailure
from retailpos.core.roles import Role
from retailpos.models.user import User


class UserRepository:
    """Credential-store queries. Commits are explicit via ``save``."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _commit(self) -> None:
        """Commit, surfacing store trouble as ``InfrastructureFailure``.

        Constraint violations pass through untouched so callers can map them
        to conflicts.
        """
        try:
            await self.db.commit()
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise InfrastructureFailure(f"Credential store write failed: {exc}") from exc

    async def find_by_login_email(self, login_email: str) -> User | None:
        result = await self.db.execute(
            select(User).where(User.login_email == login_email)
        )
        return result.scalar_one_or_none()

    async def find_by_id(self, user_id: str) -> User | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def find_cashier(self, user_id: str) -> User | None:
        result = await self.db.execute(
            select(User).where(User.id == user_id, User.role == Role.CASHIER.value)
        )
        return result.scalar_one_or_none()

    async def find_admin(self) -> User | None:
        result = await self.db.execute(
            select(User).where(User.role == Role.ADMIN.value).limit(1)
        )
        return result.scalar_one_or_none()

    async def save(self, user: User) -> User:
        self.db.add(user)
        await self._commit()
        await self.db.refresh(user)
        return user

    async def consume_reset_token(
        self,
        user_id: str,
        token: str,
        *,
        hashed_password: str | None = None,
        complete_setup: bool = False,
    ) -> bool:
        """Clear the reset token only if it still equals *token*.

        The optional password and setup-flag writes ride in the same UPDATE,
        so a token can be spent at most once even under concurrent attempts.
        """
        values: dict[str, object] = {
            "reset_token": None,
            "reset_token_expiry": None,
            "reset_requested": False,
        }
        if hashed_password is not None:
            values["hashed_password"] = hashed_password
        if complete_setup:
            values["setup_complete"] = True
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.reset_token == token)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._commit()
        return result.rowcount == 1

    async def discard_reset_token(self, user_id: str, token: str) -> bool:
        """Drop an expired token, unless it has been replaced since it was read."""
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.reset_token == token)
            .values(reset_token=None, reset_token_expiry=None)
            .execution_options(synchronize_session=False)
        )
        await self._commit()
        return result.rowcount == 1

    async def list_cashiers(self, skip: int = 0, limit: int = 100) -> list[User]:
        result = await self.db.execute(
            select(User)
            .where(User.role == Role.CASHIER.value)
            .order_by(User.created_at)
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_reset_requests(self) -> list[User]:
        result = await self.db.execute(
            select(User)
            .where(User.role == Role.CASHIER.value, User.reset_requested.is_(True))
            .order_by(User.updated_at)
        )
        return list(result.scalars().all())

    async def count_reset_requests(self) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(User)
            .where(User.role == Role.CASHIER.value, User.reset_requested.is_(True))
        )
        return int(result.scalar_one())
