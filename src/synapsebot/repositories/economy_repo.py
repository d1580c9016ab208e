"""
Coin balances in the ``economy`` document.

Layout::

    {"users": {"<user id>": {"balance": int, "transactions": [...],
                             "last_daily": iso | null, "daily_streak": int}}}

Every balance change appends a transaction entry; only the most recent
``MAX_TRANSACTIONS`` are kept per user.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Tuple

from synapsebot.repositories.base_repo import DocumentRepo
from synapsebot.util.logger import get_logger
from synapsebot.util.time_utils import parse_timestamp, to_iso, utcnow

logger = get_logger("economy_repo")

MAX_TRANSACTIONS = 50
DAILY_COOLDOWN = timedelta(hours=24)
STREAK_WINDOW = timedelta(hours=48)


class InsufficientFundsError(Exception):
    def __init__(self, user_id: str, balance: int, amount: int) -> None:
        self.user_id = user_id
        self.balance = balance
        self.amount = amount
        super().__init__(f"User {user_id} has {balance} coins, needs {amount}")


@dataclass(frozen=True)
class DailyClaim:
    """Outcome of a daily claim; ``retry_after`` is set only when on cooldown."""
    claimed: bool
    amount: int
    streak: int
    balance: int
    retry_after: timedelta | None = None


def _new_account() -> Dict[str, Any]:
    return {"balance": 0, "transactions": [], "last_daily": None, "daily_streak": 0}


class EconomyRepo(DocumentRepo):
    document_key = "economy"
    collections = ("users",)
    mapping_collections = ("users",)

    @staticmethod
    def _account(document: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        account = document["users"].get(str(user_id))
        if not isinstance(account, dict):
            account = _new_account()
            document["users"][str(user_id)] = account
        for name, value in _new_account().items():
            account.setdefault(name, value)
        return account

    @staticmethod
    def _record(account: Dict[str, Any], kind: str, amount: int, now: datetime) -> None:
        before = int(account.get("balance") or 0)
        if kind == "set":
            after = amount
        else:
            after = max(0, before + amount)
        account["balance"] = after

        transactions = account["transactions"] if isinstance(account["transactions"], list) else []
        transactions.append({
            "type": kind,
            "amount": amount,
            "balance_before": before,
            "balance_after": after,
            "timestamp": to_iso(now),
        })
        account["transactions"] = transactions[-MAX_TRANSACTIONS:]

    async def get_balance(self, user_id: str) -> int:
        document = await self._load()
        account = document["users"].get(str(user_id))
        if not isinstance(account, dict):
            return 0
        return int(account.get("balance") or 0)

    async def get_transactions(self, user_id: str) -> List[Dict[str, Any]]:
        document = await self._load()
        account = document["users"].get(str(user_id))
        if not isinstance(account, dict) or not isinstance(account.get("transactions"), list):
            return []
        return account["transactions"]

    async def add_coins(self, user_id: str, amount: int, *, now: datetime | None = None) -> int:
        if amount < 0:
            raise ValueError("amount must not be negative")
        async with self._edit() as document:
            account = self._account(document, user_id)
            self._record(account, "add", amount, now or utcnow())
            return account["balance"]

    async def remove_coins(self, user_id: str, amount: int, *, now: datetime | None = None) -> int:
        """Take coins away; the balance never goes below zero."""
        if amount < 0:
            raise ValueError("amount must not be negative")
        async with self._edit() as document:
            account = self._account(document, user_id)
            self._record(account, "remove", -amount, now or utcnow())
            return account["balance"]

    async def set_coins(self, user_id: str, amount: int, *, now: datetime | None = None) -> int:
        if amount < 0:
            raise ValueError("amount must not be negative")
        async with self._edit() as document:
            account = self._account(document, user_id)
            self._record(account, "set", amount, now or utcnow())
            return account["balance"]

    async def transfer(self, sender_id: str, recipient_id: str, amount: int, *,
                       now: datetime | None = None) -> Tuple[int, int]:
        """
        Move coins between two users in one write.

        Returns:
            The sender's and recipient's new balances.

        Raises:
            ValueError: Non-positive amount or a transfer to oneself.
            InsufficientFundsError: The sender cannot cover the amount.
        """
        if amount <= 0:
            raise ValueError("amount must be positive")
        if str(sender_id) == str(recipient_id):
            raise ValueError("cannot transfer coins to yourself")

        now = now or utcnow()
        async with self._edit() as document:
            sender = self._account(document, sender_id)
            balance = int(sender.get("balance") or 0)
            if balance < amount:
                raise InsufficientFundsError(str(sender_id), balance, amount)
            recipient = self._account(document, recipient_id)
            self._record(sender, "transfer_out", -amount, now)
            self._record(recipient, "transfer_in", amount, now)
            return sender["balance"], recipient["balance"]

    async def claim_daily(
        self,
        user_id: str,
        amount: int = 100,
        *,
        streak_bonus: int = 10,
        cooldown: timedelta = DAILY_COOLDOWN,
        now: datetime | None = None,
    ) -> DailyClaim:
        """
        Pay out the daily reward unless the user already claimed within ``cooldown``.

        Claiming again within 48 hours of the previous claim extends the
        streak; each streak day past the first adds ``streak_bonus`` coins.
        """
        now = now or utcnow()
        async with self._edit() as document:
            account = self._account(document, user_id)
            last = parse_timestamp(account.get("last_daily"))
            streak = int(account.get("daily_streak") or 0)

            if last is not None and now - last < cooldown:
                return DailyClaim(
                    claimed=False,
                    amount=0,
                    streak=streak,
                    balance=int(account.get("balance") or 0),
                    retry_after=cooldown - (now - last),
                )

            streak = streak + 1 if last is not None and now - last < STREAK_WINDOW else 1
            reward = amount + (streak - 1) * streak_bonus
            self._record(account, "daily", reward, now)
            account["last_daily"] = to_iso(now)
            account["daily_streak"] = streak

        logger.debug("[ECONOMY REPO] %s claimed %d coins (streak %d)", user_id, reward, streak)
        return DailyClaim(claimed=True, amount=reward, streak=streak, balance=account["balance"])

    async def leaderboard(self, limit: int = 10) -> List[Tuple[str, int]]:
        document = await self._load()
        balances = [
            (user_id, int(account.get("balance") or 0))
            for user_id, account in document["users"].items()
            if isinstance(account, dict)
        ]
        balances.sort(key=lambda item: item[1], reverse=True)
        return balances[:limit]
