"""
collective_node/runtime/events.py
---------------------------------

Append-only event log for external monitoring.

Shape of each record:

    {"ts": <unix_ts>, "type": "deposit" | "withdrawal" | ..., "data": {...}}

Events are appended by the executor after the operation's state mutation
succeeded; a rolled-back operation leaves no event behind.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)

DEPOSIT = "deposit"
WITHDRAWAL = "withdrawal"


@dataclass
class EventLog:
    records: List[Dict[str, Any]] = field(default_factory=list)

    def emit(self, typ: str, **data: Any) -> Dict[str, Any]:
        rec = {"ts": time.time(), "type": str(typ), "data": data}
        self.records.append(rec)
        log.info("event %s %s", typ, data)
        return rec

    def deposit(self, account: str, amount: int) -> Dict[str, Any]:
        return self.emit(DEPOSIT, account=account, amount=int(amount))

    def withdrawal(self, account: str, destination: str, amount: int) -> Dict[str, Any]:
        return self.emit(WITHDRAWAL, account=account, destination=destination, amount=int(amount))

    def of_type(self, typ: Optional[str] = None) -> List[Dict[str, Any]]:
        if typ is None:
            return list(self.records)
        return [r for r in self.records if r.get("type") == typ]

    def __len__(self) -> int:
        return len(self.records)
