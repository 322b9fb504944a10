import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import RECOMMENDATIONS_DIR
from .models import RankedMovie

logger = logging.getLogger(__name__)


def save_recommendations(
    algorithm: str,
    preferences: dict[str, Any],
    recommendations: list[RankedMovie],
    directory: Path = RECOMMENDATIONS_DIR,
) -> Path:
    """
    Write one recommendation run to ``<directory>/<epoch-ms>.json``.

    Returns the path of the written file.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    path = directory / f"{int(time.time() * 1000)}.json"
    while path.exists():
        # Two runs within the same millisecond
        path = path.with_name(f"{int(path.stem) + 1}.json")

    payload = {
        "algorithm": algorithm,
        "preferences": preferences,
        "recommendations": [r.to_dict() for r in recommendations],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    path.write_text(json.dumps(payload, indent=2))
    logger.info(f"Saved {len(recommendations)} recommendations to {path}")
    return path
