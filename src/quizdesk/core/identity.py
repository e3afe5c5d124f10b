"""Identity provider: signed-in account and change notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuthAccount:
    """An authenticated account as reported by the identity provider."""

    email: str
    account_id: str


AccountListener = Callable[[AuthAccount | None], Awaitable[None]]


class IdentityProvider:
    """In-process identity provider.

    Listeners receive the new account (or None on sign-out) and are
    awaited in subscription order.
    """

    def __init__(self, account: AuthAccount | None = None):
        self._account = account
        self._listeners: list[AccountListener] = []

    @property
    def current_account(self) -> AuthAccount | None:
        return self._account

    def subscribe(self, listener: AccountListener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in(self, account: AuthAccount) -> None:
        self._account = account
        logger.info("account_signed_in", email=account.email, account_id=account.account_id)
        await self._notify()

    async def sign_out(self) -> None:
        self._account = None
        logger.info("account_signed_out")
        await self._notify()

    async def _notify(self) -> None:
        account = self._account
        for listener in list(self._listeners):
            await listener(account)
