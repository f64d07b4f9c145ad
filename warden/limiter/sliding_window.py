"""Sliding-window request limiter.

State: dict[subject_id, dict[endpoint, RequestWindow]].  Each window is a
deque of allowed-request timestamps: O(1) append, amortized O(1) eviction
from the front.  Denied attempts are never appended; they are violations,
not requests.

Windows are counted, not truncated, to the policy window: entries are only
dropped once older than the limiter's retention, so a policy stretched by
the throttle still sees requests made under the shorter base window.
"""

from collections import deque
from typing import NamedTuple

from warden.limiter.policies import EndpointPolicy

# Burst sub-window.  Fixed, independent of the policy's main window.
BURST_WINDOW_SECONDS = 1.0


class Decision(NamedTuple):
    allowed: bool
    reason: str = ""
    limit: str = ""  # cooldown | burst | window | invalid, empty on allow


ALLOW = Decision(True)


class RequestWindow:
    __slots__ = ("_buf",)

    def __init__(self):
        self._buf: deque[float] = deque()

    def prune(self, now: float, window_seconds: float) -> None:
        cutoff = now - window_seconds
        while self._buf and self._buf[0] <= cutoff:
            self._buf.popleft()

    def append(self, timestamp: float) -> None:
        self._buf.append(timestamp)

    def last(self) -> float | None:
        return self._buf[-1] if self._buf else None

    def count_since(self, cutoff: float) -> int:
        """Count entries strictly newer than *cutoff* (scans from the back)."""
        n = 0
        for ts in reversed(self._buf):
            if ts <= cutoff:
                break
            n += 1
        return n

    def __len__(self) -> int:
        return len(self._buf)


class SlidingWindowLimiter:

    def __init__(self, retention_seconds: float = 0.0):
        self.retention_seconds = retention_seconds
        self._state: dict[str, dict[str, RequestWindow]] = {}

    def allow(self, subject_id: str, endpoint: str, policy: EndpointPolicy,
              now: float) -> Decision:
        """Evaluate one request against *policy*.  Does not record it.

        Order matters: cooldown, then burst, then the main window, so the
        reason names the tightest limit that was hit.
        """
        window = self._window(subject_id, endpoint)
        window.prune(now, max(self.retention_seconds, policy.window_seconds))

        last = window.last()
        if policy.cooldown_seconds > 0 and last is not None:
            elapsed = now - last
            if elapsed < policy.cooldown_seconds:
                retry = policy.cooldown_seconds - elapsed
                return Decision(
                    False, f"cooldown active, retry in {retry:.2f}s", "cooldown",
                )

        burst = window.count_since(now - BURST_WINDOW_SECONDS)
        if burst >= policy.burst_limit:
            return Decision(
                False,
                f"burst limit exceeded: {burst}/{policy.burst_limit} requests in 1s",
                "burst",
            )

        count = window.count_since(now - policy.window_seconds)
        if count >= policy.max_requests:
            return Decision(
                False,
                f"rate limit exceeded: {count}/{policy.max_requests} "
                f"requests per {policy.window_seconds:g}s",
                "window",
            )

        return ALLOW

    def record(self, subject_id: str, endpoint: str, now: float) -> None:
        self._window(subject_id, endpoint).append(now)

    def request_count(self, subject_id: str, endpoint: str, now: float,
                      window_seconds: float) -> int:
        window = self._state.get(subject_id, {}).get(endpoint)
        if window is None:
            return 0
        return window.count_since(now - window_seconds)

    def prune(self, now: float, max_age: float) -> int:
        """Drop entries older than *max_age* and forget empty windows.

        Returns the number of windows removed.
        """
        removed = 0
        for subject_id in list(self._state):
            windows = self._state[subject_id]
            for endpoint in list(windows):
                windows[endpoint].prune(now, max_age)
                if not windows[endpoint]:
                    del windows[endpoint]
                    removed += 1
            if not windows:
                del self._state[subject_id]
        return removed

    def evict(self, subject_id: str) -> None:
        self._state.pop(subject_id, None)

    def subjects(self) -> list[str]:
        return list(self._state)

    def _window(self, subject_id: str, endpoint: str) -> RequestWindow:
        windows = self._state.setdefault(subject_id, {})
        if endpoint not in windows:
            windows[endpoint] = RequestWindow()
        return windows[endpoint]
