import asyncio
import logging
from dataclasses import dataclass

from dojo.config import SESSION_COST_CREDITS

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreditGranted:
    remaining: int


@dataclass(frozen=True)
class InsufficientBalance:
    balance: int


class CreditGate:
    """Pays for a session start with one atomic ledger deduction.

    ``ledger`` needs ``async deduct(amount)`` returning an object with
    ``success`` and ``remaining``, and ``async get_balance()``.
    """

    def __init__(self, ledger, cost: int = SESSION_COST_CREDITS) -> None:
        self._ledger = ledger
        self._cost = cost
        self._lock = asyncio.Lock()

    async def balance(self) -> int:
        # Display only; the start decision never reads this.
        return await self._ledger.get_balance()

    async def check_and_start(self) -> CreditGranted | InsufficientBalance:
        async with self._lock:
            result = await self._ledger.deduct(self._cost)
        if result.success:
            LOGGER.info("Session start paid, %s credits remaining", result.remaining)
            return CreditGranted(remaining=result.remaining)
        LOGGER.info("Session start refused, balance %s below cost %s", result.remaining, self._cost)
        return InsufficientBalance(balance=result.remaining)
