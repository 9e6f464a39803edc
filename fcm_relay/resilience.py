from collections import deque
from threading import Lock
from datetime import datetime, timezone
from typing import Optional, Dict, Any

STAGES = ("consume", "dispatch", "store", "publish")

class _ResilienceState:
    def __init__(self, max_events: int = 100):
        self._lock = Lock()
        self.success: Dict[str, int] = {s: 0 for s in STAGES}
        self.fail: Dict[str, int] = {s: 0 for s in STAGES}
        self.consecutive_failures = 0
        self.last_success: Optional[str] = None
        self.last_error: Optional[Dict[str, Any]] = None
        self.events = deque(maxlen=max_events)  # ring buffer de eventos de resiliencia

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def record_success(self, stage: str, identifier: Optional[str] = None):
        now = self._now()
        with self._lock:
            self.success[stage] += 1
            # Una racha se corta solo con un pase completo
            if stage == "publish":
                self.consecutive_failures = 0
            self.last_success = now
            self.events.append({
                "ts": now, "type": f"{stage}_success",
                "identifier": identifier,
            })

    def record_failure(self, stage: str, error: str, identifier: Optional[str] = None):
        now = self._now()
        with self._lock:
            self.fail[stage] += 1
            self.consecutive_failures += 1
            self.last_error = {"ts": now, "stage": stage, "error": error}
            self.events.append({
                "ts": now, "type": f"{stage}_failure",
                "error": error, "identifier": identifier,
            })

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "success": dict(self.success),
                "fail": dict(self.fail),
                "consecutive_failures": self.consecutive_failures,
                "last_success": self.last_success,
                "last_error": self.last_error,
                "recent": list(self.events),
            }

_state = _ResilienceState()

def record_success(stage: str, identifier: Optional[str] = None):
    _state.record_success(stage, identifier)

def record_failure(stage: str, error: Exception | str, identifier: Optional[str] = None):
    _state.record_failure(stage, str(error), identifier)

def get_snapshot() -> Dict[str, Any]:
    return _state.snapshot()

def reset():
    global _state
    _state = _ResilienceState()
