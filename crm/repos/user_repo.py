from __future__ import annotations

from typing import Protocol
from uuid import UUID

from crm.models.user import User, normalize_email


class UserRepo(Protocol):
    async def get_by_id(self, user_id: UUID) -> User | None: ...
    async def get_by_email(self, email: str) -> User | None: ...
    async def list_by_ids(self, user_ids: list[UUID]) -> list[User]: ...
    async def upsert(self, user: User) -> User: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, User] = {}
        self._by_email: dict[str, User] = {}

    async def get_by_id(self, user_id: UUID) -> User | None:
        return self._by_id.get(user_id)

    async def get_by_email(self, email: str) -> User | None:
        return self._by_email.get(normalize_email(email))

    async def list_by_ids(self, user_ids: list[UUID]) -> list[User]:
        return [self._by_id[i] for i in user_ids if i in self._by_id]

    async def upsert(self, user: User) -> User:
        existing = self._by_id.get(user.id)
        if existing is not None:
            self._by_email.pop(existing.email, None)
            if not user.name and existing.name:
                user = User(id=user.id, email=user.email, name=existing.name)
        self._by_id[user.id] = user
        self._by_email[user.email] = user
        return user
