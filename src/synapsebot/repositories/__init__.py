"""
Domain repositories on top of the file store.

Each repository owns one document and exposes the operations commands need,
so no command reads, mutates and writes JSON by hand:

- **moderation_repo.py**: temporary bans, mutes, timeouts and warnings
  (``moderation`` document). Expiring records are picked up by the sweep
  scheduler.
- **reminder_repo.py**: personal reminders (``remindme`` document).
- **economy_repo.py**: coin balances, transaction history and daily claims
  (``economy`` document).
- **leveling_repo.py**: raw XP and level storage (``levels`` document).
"""

from synapsebot.repositories.economy_repo import DailyClaim, EconomyRepo, InsufficientFundsError
from synapsebot.repositories.leveling_repo import LevelingRepo
from synapsebot.repositories.moderation_repo import ModerationRepo
from synapsebot.repositories.reminder_repo import ReminderLimitError, ReminderRepo, ReminderStats

__all__ = [
    "DailyClaim",
    "EconomyRepo",
    "InsufficientFundsError",
    "LevelingRepo",
    "ModerationRepo",
    "ReminderLimitError",
    "ReminderRepo",
    "ReminderStats",
]
