# planhub/services/email_gate.py
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Protocol

from planhub.core.errors import LeadRejectedError
from planhub.schemas.lead import GateResult, LeadRecord
from planhub.services.email_validation import validate_lead_email
from planhub.services.lead_service import LeadCollectorClient, build_lead_payload

logger = logging.getLogger(__name__)

GateMode = Literal["blocking", "passive"]


# =========================
# Durable key-value state
# =========================

class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """Keeps every key in one JSON document; writes go through a temp file + rename."""

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Lead state file %s unreadable, starting empty: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _dump(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
        os.replace(tmp, self.path)

    def get(self, key: str) -> Optional[Any]:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)


# =========================
# Gate
# =========================

class GateState(str, Enum):
    LOCKED = "locked"
    PROMPT_OPEN = "prompt_open"
    UNLOCKED = "unlocked"


@dataclass
class GateTrigger:
    on_success: Callable[[], Any]
    on_cancel: Optional[Callable[[], Any]] = None
    reason: str = ""
    source_page: str = ""
    context_tags: List[str] = field(default_factory=list)


class EmailGate:
    """
    Gates an action behind a captured professional email.

    LOCKED -> PROMPT_OPEN on require_unlock(); PROMPT_OPEN -> UNLOCKED on a
    valid submission; PROMPT_OPEN -> LOCKED on cancel() in passive mode only.
    UNLOCKED lasts as long as the record stays in the store.
    """

    def __init__(
        self,
        store: KeyValueStore,
        collector: Optional[LeadCollectorClient] = None,
        *,
        queue_store: Optional[KeyValueStore] = None,
        storage_key: str = "lead_captured",
        mode: GateMode = "blocking",
        block_free_emails: bool = True,
        custom_blocked_domains: Iterable[str] = (),
        queue_limit: int = 10,
    ) -> None:
        self.store = store
        self.collector = collector
        self.storage_key = storage_key
        self.queue_store = queue_store if queue_store is not None else store
        self.queue_key = f"{storage_key}_queue"
        self.mode = mode
        self.block_free_emails = block_free_emails
        self.custom_blocked_domains = tuple(custom_blocked_domains)
        self.queue_limit = queue_limit
        self._pending: Optional[GateTrigger] = None
        self._state = GateState.LOCKED

    @property
    def state(self) -> GateState:
        if self.store.get(self.storage_key):
            return GateState.UNLOCKED
        return self._state

    @property
    def is_unlocked(self) -> bool:
        return self.state is GateState.UNLOCKED

    @property
    def lead(self) -> Optional[LeadRecord]:
        raw = self.store.get(self.storage_key)
        if not raw:
            return None
        return LeadRecord.model_validate(raw)

    def require_unlock(self, trigger: GateTrigger) -> None:
        if self.is_unlocked:
            trigger.on_success()
            return

        self._pending = trigger
        self._state = GateState.PROMPT_OPEN

    def submit_email(
        self,
        email: str,
        *,
        language: str = "en",
        user_agent: str = "",
        referrer: str = "",
    ) -> GateResult:
        existing = self.lead
        if existing is not None:
            return GateResult(ok=True, lead=existing)

        check = validate_lead_email(
            email,
            block_free_emails=self.block_free_emails,
            custom_domains=self.custom_blocked_domains,
        )
        if not check.is_valid:
            return GateResult(ok=False, error=check.error)

        trigger = self._pending
        record = LeadRecord(
            email=email.strip().lower(),
            source_page=trigger.source_page if trigger else "",
            trigger_reason=trigger.reason if trigger else "",
            context_tags=list(trigger.context_tags) if trigger else [],
        )
        payload = build_lead_payload(
            record, language=language, user_agent=user_agent, referrer=referrer
        )

        try:
            delivered = self._notify(payload)
        except LeadRejectedError:
            return GateResult(ok=False, error="rejected")

        if not delivered:
            self._enqueue(payload)

        self.store.set(self.storage_key, record.model_dump(mode="json"))
        self._state = GateState.UNLOCKED
        self._pending = None

        if trigger is not None:
            trigger.on_success()

        return GateResult(ok=True, lead=record, notified=delivered)

    def cancel(self) -> bool:
        if self.state is not GateState.PROMPT_OPEN:
            return False
        if self.mode != "passive":
            return False

        trigger = self._pending
        self._pending = None
        self._state = GateState.LOCKED
        if trigger is not None and trigger.on_cancel is not None:
            trigger.on_cancel()
        return True

    def reset(self) -> None:
        self.store.remove(self.storage_key)
        self._pending = None
        self._state = GateState.LOCKED

    # -------------------------
    # failed submissions
    # -------------------------

    def queued_leads(self) -> List[Dict[str, Any]]:
        queue = self.queue_store.get(self.queue_key)
        return list(queue) if isinstance(queue, list) else []

    def _notify(self, payload: Dict[str, Any]) -> bool:
        if self.collector is None:
            return False
        return self.collector.submit(payload)

    def _enqueue(self, payload: Dict[str, Any]) -> None:
        queue = [q for q in self.queued_leads() if q.get("email") != payload.get("email")]
        queue.append(payload)
        self.queue_store.set(self.queue_key, queue[-self.queue_limit:])

    def retry_failed(self) -> int:
        """Re-send every queued lead; returns how many were delivered."""
        delivered = 0
        remaining: List[Dict[str, Any]] = []

        for payload in self.queued_leads():
            try:
                ok = self._notify(payload)
            except LeadRejectedError:
                logger.warning("Queued lead %s rejected by hub, dropped", payload.get("email"))
                continue
            if ok:
                delivered += 1
            else:
                remaining.append(payload)

        if remaining:
            self.queue_store.set(self.queue_key, remaining)
        else:
            self.queue_store.remove(self.queue_key)
        return delivered
