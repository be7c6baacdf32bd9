"""
Журнал шагов многошаговых операций.

Последовательности approve -> mint, create -> initialize, decrease -> collect
не атомарны. Журнал хранит последний завершённый шаг для каждой сущности
(пул, позиция), чтобы повторный запуск продолжил с места падения, а не
повторял уже подтверждённые транзакции.

Ключи:
    pool:<token0>:<token1>:<fee>
    position:<token_id>
"""

import json
import logging
import os
import tempfile
import threading
import time
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class PoolState(str, Enum):
    ABSENT = "ABSENT"
    CREATING = "CREATING"
    CREATED_UNINITIALIZED = "CREATED_UNINITIALIZED"
    INITIALIZED = "INITIALIZED"


class PositionStep(str, Enum):
    MINTED = "MINTED"
    DECREASING = "DECREASING"
    DECREASED = "DECREASED"
    COLLECTED = "COLLECTED"


def pool_key(token0: str, token1: str, fee: int) -> str:
    return f"pool:{token0.lower()}:{token1.lower()}:{fee}"


def position_key(token_id: int) -> str:
    return f"position:{token_id}"


class StateJournal:
    """
    Потокобезопасный журнал состояний.

    path=None - журнал только в памяти (состояние живёт до конца процесса).
    С path - JSON файл, запись атомарная (tmp файл + os.replace).
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._lock = threading.Lock()
        self._entries: Dict[str, dict] = {}
        if path and os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                self._entries = json.load(f)
            logger.debug(f"Loaded {len(self._entries)} journal entries from {path}")

    def get(self, key: str) -> Optional[dict]:
        with self._lock:
            entry = self._entries.get(key)
            return dict(entry) if entry else None

    def step(self, key: str) -> Optional[str]:
        entry = self.get(key)
        return entry["step"] if entry else None

    def record(self, key: str, step: str, **details) -> dict:
        """Записать завершённый шаг (details: tx_hash, pool_address, ...)."""
        step = step.value if isinstance(step, Enum) else step
        with self._lock:
            entry = dict(self._entries.get(key, {}))
            entry.update(details)
            entry["step"] = step
            entry["updated_at"] = int(time.time())
            self._entries[key] = entry
            self._flush()
        logger.debug(f"Journal {key} -> {step}")
        return dict(entry)

    def clear(self, key: str):
        with self._lock:
            if self._entries.pop(key, None) is not None:
                self._flush()

    def _flush(self):
        if not self.path:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(prefix=".journal-", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._entries, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
