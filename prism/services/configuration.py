"""
Scoring configuration overrides for the Prism leaderboard engine.

Stored keys overlay the static tables in prism.constants:
- weights.<PLATFORM>: platform weight (number >= 0)
- ranges.<PLATFORM>: [min, max] normalization range, or a bare max (min 0)
- leaderboard.aggregation_policy: "mean" or "weighted_sum"

Values are stored as JSON and every change writes an AuditLog row. The running
engine never sees a change directly: build_scoring_config() returns a new
immutable ScoringConfig, and the caller builds a new engine from it.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple
from sqlalchemy import select
from prism.services.base import BaseService
from prism.database.models import Configuration, AuditLog
from prism.utils.scoring import ScoringConfig
from prism.utils.scoring_strategies import AggregationStrategyFactory

logger = logging.getLogger(__name__)

WEIGHTS_CATEGORY = 'weights'
RANGES_CATEGORY = 'ranges'
POLICY_KEY = 'leaderboard.aggregation_policy'


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigurationService(BaseService):
    """Stored scoring overrides with an audit trail."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self._overrides: Dict[str, Any] = {}

    async def load_all(self):
        """Read every stored override; rows holding invalid JSON are skipped."""
        async with self.get_session() as session:
            rows = (await session.execute(select(Configuration))).scalars().all()

        overrides = {}
        for row in rows:
            try:
                overrides[row.key] = json.loads(row.value)
            except json.JSONDecodeError:
                logger.warning(f"Stored override '{row.key}' is not valid JSON, skipping")
        self._overrides = overrides
        logger.info(f"Loaded {len(overrides)} scoring override(s)")

    def get(self, key: str, default: Any = None) -> Any:
        return self._overrides.get(key, default)

    async def set(self, key: str, value: Any, user_id: Optional[str] = None):
        """
        Validate and store one override, recording the change in the audit log.

        Raises:
            ValueError: the key is not a scoring override or the value is invalid for it
        """
        self._validate(key, value)
        encoded = json.dumps(value)

        async with self.get_session() as session:
            row = await session.get(Configuration, key)
            previous = row.value if row is not None else None
            if row is None:
                session.add(Configuration(key=key, value=encoded))
            else:
                row.value = encoded
            session.add(AuditLog(
                user_id=user_id,
                action='config_set',
                details=json.dumps({'key': key, 'old_value': self._decode(previous), 'new_value': value})
            ))

        self._overrides[key] = value
        logger.info(f"Scoring override {key} set to {value!r} by {user_id or 'system'}")

    def get_by_category(self, category: str) -> Dict[str, Any]:
        """Overrides under '<category>.', keyed by the remainder of the key."""
        prefix = f"{category}."
        return {
            key[len(prefix):]: value
            for key, value in self._overrides.items()
            if key.startswith(prefix)
        }

    def get_aggregation_policy(self, default: str) -> str:
        return str(self.get(POLICY_KEY, default))

    def build_scoring_config(self, base: Optional[ScoringConfig] = None) -> ScoringConfig:
        """
        Build a new immutable ScoringConfig from the static tables plus stored overrides.

        Invalid stored values (written before validation, or edited by hand) are
        logged and ignored so a bad row cannot stop the engine from starting.
        """
        base = base or ScoringConfig()
        weights = dict(base.weights)
        ranges = dict(base.ranges)

        for platform, value in self.get_by_category(WEIGHTS_CATEGORY).items():
            if _is_number(value) and value >= 0:
                weights[platform.upper()] = float(value)
            else:
                logger.warning(f"Ignoring invalid weight override for {platform}: {value!r}")

        for platform, value in self.get_by_category(RANGES_CATEGORY).items():
            parsed = self._parse_range(value)
            if parsed is None:
                logger.warning(f"Ignoring invalid range override for {platform}: {value!r}")
                continue
            ranges[platform.upper()] = parsed

        return ScoringConfig(
            weights=weights,
            ranges=ranges,
            default_weight=base.default_weight,
            default_range=base.default_range,
            metric_fields=base.metric_fields
        )

    @classmethod
    def _validate(cls, key: str, value: Any):
        category, _, name = key.partition('.')
        if key == POLICY_KEY:
            if str(value).lower() not in AggregationStrategyFactory.get_available_policies():
                raise ValueError(f"Unknown aggregation policy: {value!r}")
        elif category == WEIGHTS_CATEGORY and name:
            if not _is_number(value) or value < 0:
                raise ValueError(f"Weight for {name} must be a number >= 0, got {value!r}")
        elif category == RANGES_CATEGORY and name:
            if cls._parse_range(value) is None:
                raise ValueError(f"Range for {name} must be a max or [min, max] with min <= max, got {value!r}")
        else:
            raise ValueError(f"Unknown scoring override key: {key}")

    @staticmethod
    def _decode(raw: Optional[str]) -> Any:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return {"error": "invalid JSON", "raw": raw}

    @staticmethod
    def _parse_range(value: Any) -> Optional[Tuple[float, float]]:
        if _is_number(value):
            return (0.0, float(value))
        if isinstance(value, (list, tuple)) and len(value) == 2:
            low, high = value
            if _is_number(low) and _is_number(high) and low <= high:
                return (float(low), float(high))
        return None
