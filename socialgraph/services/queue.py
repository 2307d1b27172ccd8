"""
socialgraph/services/queue.py

Fila de tarefas de reparo consumida por workers/repair_worker.py.

Só os endpoints de manutenção enfileiram: o motor nunca agenda reparo
por conta própria.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum


class RepairKind(str, Enum):
    RECONCILE_EDGE = "reconcile_edge"
    AFTER_UNFOLLOW = "after_unfollow"
    AFTER_PRIVACY_CHANGE = "after_privacy_change"


@dataclass(frozen=True)
class RepairTask:
    kind: RepairKind
    account_id: str
    other_id: str | None = None


repair_queue: asyncio.Queue[RepairTask] = asyncio.Queue()
