"""Endpoint policy table — maps endpoint names to rate-limit tiers.

Loaded once at startup from YAML: parse, validate required fields, fail
loudly with the file name.  The table is read-only after construction and
shared by every subject.
"""

from dataclasses import dataclass
from pathlib import Path

import yaml

CRITICAL = "CRITICAL"
STANDARD = "STANDARD"
HIGH_FREQUENCY = "HIGH_FREQUENCY"
PRIVILEGED = "PRIVILEGED"

TIERS = (CRITICAL, STANDARD, HIGH_FREQUENCY, PRIVILEGED)

DEFAULT_TABLE_PATH = Path(__file__).resolve().parent / "endpoints.yml"

_REQUIRED_POLICY_FIELDS = (
    "max_requests", "window_seconds", "burst_limit", "cooldown_seconds",
)


@dataclass(frozen=True)
class EndpointPolicy:
    tier: str
    max_requests: int
    window_seconds: float
    burst_limit: int
    cooldown_seconds: float


class PolicyTable:
    """Static endpoint → tier lookup."""

    def __init__(self, tiers: dict[str, EndpointPolicy],
                 endpoints: dict[str, str] | None = None):
        missing = [t for t in TIERS if t not in tiers]
        if missing:
            raise ValueError(f"policy table missing tiers: {', '.join(missing)}")
        self._tiers = dict(tiers)
        self._endpoints = dict(endpoints or {})
        for name, tier in self._endpoints.items():
            if tier not in self._tiers:
                raise ValueError(f"endpoint '{name}' mapped to unknown tier '{tier}'")

    def resolve(self, endpoint: str, is_privileged: bool = False) -> EndpointPolicy:
        """Return the policy for *endpoint*.

        Privileged subjects get the PRIVILEGED tier no matter which endpoint
        they hit.  Unknown endpoints default to STANDARD.
        """
        if is_privileged:
            return self._tiers[PRIVILEGED]
        return self._tiers[self._endpoints.get(endpoint, STANDARD)]

    @property
    def endpoints(self) -> dict[str, str]:
        return dict(self._endpoints)

    @property
    def max_window_seconds(self) -> float:
        return max(p.window_seconds for p in self._tiers.values())


def load_policy_table(path: str | Path = DEFAULT_TABLE_PATH) -> PolicyTable:
    """Parse and validate an endpoints YAML file."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Policy table not found: {path}")

    with open(path) as f:
        definition = yaml.safe_load(f)

    if not isinstance(definition, dict):
        raise ValueError(f"{path.name}: policy table must be a YAML mapping")
    if "tiers" not in definition:
        raise ValueError(f"{path.name}: missing required field 'tiers'")

    tiers = {}
    for tier, limits in (definition["tiers"] or {}).items():
        if not isinstance(limits, dict):
            raise ValueError(f"{path.name}: tier '{tier}' must be a mapping")
        for field in _REQUIRED_POLICY_FIELDS:
            if field not in limits:
                raise ValueError(
                    f"{path.name}: tier '{tier}' missing required field '{field}'"
                )
        if int(limits["max_requests"]) < 1 or int(limits["burst_limit"]) < 1:
            raise ValueError(
                f"{path.name}: tier '{tier}' limits must be at least 1"
            )
        if float(limits["window_seconds"]) <= 0:
            raise ValueError(
                f"{path.name}: tier '{tier}' window_seconds must be positive"
            )
        tiers[tier] = EndpointPolicy(
            tier=tier,
            max_requests=int(limits["max_requests"]),
            window_seconds=float(limits["window_seconds"]),
            burst_limit=int(limits["burst_limit"]),
            cooldown_seconds=float(limits["cooldown_seconds"]),
        )

    try:
        return PolicyTable(tiers, definition.get("endpoints") or {})
    except ValueError as e:
        raise ValueError(f"{path.name}: {e}") from e
