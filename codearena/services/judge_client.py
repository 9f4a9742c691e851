"""Client for the external code-execution judge"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import requests

from codearena.config import Settings
from codearena.core.exceptions import JudgeError, JudgeUnavailableError

logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    """Outcome of running code against one input"""
    SUCCESS = "success"
    COMPILE_ERROR = "compile_error"
    RUNTIME_ERROR = "runtime_error"
    TIMEOUT = "timeout"
    MEMORY_LIMIT = "memory_limit"


@dataclass(frozen=True)
class ExecutionLimits:
    time_limit_ms: int
    memory_limit_mb: int


@dataclass(frozen=True)
class JudgeResult:
    verdict: Verdict
    stdout: str = ""
    stderr: str = ""
    time_ms: int = 0
    memory_kb: int = 0

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "JudgeResult":
        try:
            verdict = Verdict(str(payload["verdict"]).strip().lower())
        except (KeyError, ValueError) as exc:
            raise JudgeError(f"Judge returned an unknown verdict: {payload.get('verdict')!r}") from exc
        try:
            time_ms = max(0, int(payload.get("time_ms") or 0))
            memory_kb = max(0, int(payload.get("memory_kb") or 0))
        except (TypeError, ValueError) as exc:
            raise JudgeError("Judge returned malformed metrics") from exc
        return cls(
            verdict=verdict,
            stdout=str(payload.get("stdout") or ""),
            stderr=str(payload.get("stderr") or ""),
            time_ms=time_ms,
            memory_kb=memory_kb,
        )


class JudgeClient:
    """
    Contract consumed by the scoring engine.

    One call runs one test case. Implementations must bound their own wait
    and raise ``JudgeUnavailableError`` for transient failures so the caller
    can retry; anything else that goes wrong is a ``JudgeError``.
    """

    def execute(self, code: str, language: str, stdin: str, limits: ExecutionLimits) -> JudgeResult:
        raise NotImplementedError

    def close(self) -> None:
        pass


class HttpJudgeClient(JudgeClient):
    """JSON-over-HTTP judge client"""

    RETRYABLE_STATUS = {429, 502, 503, 504}

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.url = settings.JUDGE_URL
        self.connect_timeout = settings.JUDGE_CONNECT_TIMEOUT_SECONDS
        self.timeout_overhead = settings.JUDGE_TIMEOUT_OVERHEAD_SECONDS
        self._local = threading.local()
        self._shared_session = session
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()
        self._headers = {"Content-Type": "application/json"}
        if settings.JUDGE_API_TOKEN:
            self._headers["Authorization"] = f"Bearer {settings.JUDGE_API_TOKEN}"

    def _session(self) -> requests.Session:
        # requests.Session is not guaranteed thread-safe; one per grading thread.
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def execute(self, code: str, language: str, stdin: str, limits: ExecutionLimits) -> JudgeResult:
        payload = {
            "code": code,
            "language": language,
            "stdin": stdin,
            "time_limit_ms": limits.time_limit_ms,
            "memory_limit_mb": limits.memory_limit_mb,
        }
        read_timeout = limits.time_limit_ms / 1000.0 + self.timeout_overhead

        try:
            response = self._session().post(
                self.url,
                json=payload,
                headers=self._headers,
                timeout=(self.connect_timeout, read_timeout),
            )
        except requests.exceptions.Timeout as exc:
            raise JudgeUnavailableError(f"Judge timed out after {read_timeout:.1f}s") from exc
        except requests.exceptions.ConnectionError as exc:
            raise JudgeUnavailableError(f"Cannot reach judge: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise JudgeError(f"Judge request failed: {exc}") from exc

        if response.status_code in self.RETRYABLE_STATUS or response.status_code >= 500:
            raise JudgeUnavailableError(f"Judge responded with HTTP {response.status_code}")
        if response.status_code >= 400:
            raise JudgeError(f"Judge rejected request with HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise JudgeError("Judge returned a non-JSON body") from exc
        if not isinstance(body, dict):
            raise JudgeError("Judge returned an unexpected payload")

        return JudgeResult.from_payload(body)

    def close(self) -> None:
        """Close every per-thread session, whichever thread created it"""
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        if self._shared_session is not None:
            self._shared_session.close()
