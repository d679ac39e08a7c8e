"""
ClassCoins services.

The reward economy engine: ledger, daily gate, collection, resolver,
batch opener, history, and the Mystery Ball orchestration on top.
"""

from classcoins.services.batch_opener import BatchOpener, plan_batch
from classcoins.services.coin_ledger import CoinLedger
from classcoins.services.collection_assignor import (
    SOURCE_MYSTERY_BALL,
    SOURCE_TEACHER_AWARD,
    CollectionAssignor,
)
from classcoins.services.daily_gate import DailyAttemptGate, institution_today
from classcoins.services.gacha_resolver import GachaResolver
from classcoins.services.history_recorder import HistoryRecorder
from classcoins.services.mystery_ball import (
    MysteryBallService,
    StudentLockRegistry,
    get_student_locks,
    reset_student_locks,
)

__all__ = [
    "BatchOpener",
    "CoinLedger",
    "CollectionAssignor",
    "DailyAttemptGate",
    "GachaResolver",
    "HistoryRecorder",
    "MysteryBallService",
    "SOURCE_MYSTERY_BALL",
    "SOURCE_TEACHER_AWARD",
    "StudentLockRegistry",
    "get_student_locks",
    "institution_today",
    "plan_batch",
    "reset_student_locks",
]
