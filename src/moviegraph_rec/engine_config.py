import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from .config import (
    DEFAULT_MIN_RATING,
    DEFAULT_RUNTIME_MAX,
    DEFAULT_RUNTIME_MIN,
    RUNTIME_PROXIMITY_MINUTES,
)

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """
    Tunables shared by the three ranking strategies.

    Defaults give the standard scoring; change them per deployment
    rather than at call sites.
    """

    # Collaborative: a rating at or above this counts as "liked"
    min_rating: float = DEFAULT_MIN_RATING

    # Content-based: candidates must be within this many minutes (strictly)
    # of at least one seed's runtime. Filter only, never scored.
    runtime_proximity: int = RUNTIME_PROXIMITY_MINUTES
    use_runtime_filter: bool = True

    # Attribute-weighted: range applied when the caller gives none
    default_runtime_min: int = DEFAULT_RUNTIME_MIN
    default_runtime_max: int = DEFAULT_RUNTIME_MAX

    # Whether content-based results carry directors/actors next to genres
    describe_people: bool = True

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.min_rating <= 0:
            raise ValueError("min_rating must be positive")
        if self.runtime_proximity <= 0:
            raise ValueError("runtime_proximity must be positive")
        if self.default_runtime_min < 0 or self.default_runtime_max < 0:
            raise ValueError("default runtime bounds must be non-negative")
        if self.default_runtime_min > self.default_runtime_max:
            raise ValueError("default_runtime_min must not exceed default_runtime_max")

    @classmethod
    def from_file(cls, path: Path) -> "EngineConfig":
        """
        Load overrides from a JSON object; unknown keys are ignored with a warning.
        """
        payload: Any = json.loads(Path(path).read_text())
        if not isinstance(payload, dict):
            raise ValueError(f"{path} must contain a JSON object")
        known = {f.name for f in fields(cls)}
        unknown = set(payload) - known
        if unknown:
            logger.warning(f"Ignoring unknown engine settings in {path}: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in payload.items() if k in known})
