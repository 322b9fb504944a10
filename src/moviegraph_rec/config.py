"""
Configuration constants for the movie graph recommender.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


# Graph store (Neo4j server). No defaults: missing values are reported
# by Neo4jSettings.from_env().
NEO4J_URI = os.environ.get("NEO4J_URI")
NEO4J_USER = os.environ.get("NEO4J_USER")
NEO4J_PASSWORD = os.environ.get("NEO4J_PASSWORD")
NEO4J_DATABASE = os.environ.get("NEO4J_DATABASE", "neo4j")

NEO4J_CONNECTION_TIMEOUT = _get_float_env("MOVIEGRAPH_CONNECTION_TIMEOUT", 30.0, min_val=1.0)
NEO4J_MAX_RETRIES = _get_int_env("MOVIEGRAPH_MAX_RETRIES", 3, min_val=1)
NEO4J_RETRY_DELAY = _get_float_env("MOVIEGRAPH_RETRY_DELAY", 0.5, min_val=0.0)
DEFAULT_MAX_CONCURRENT = _get_int_env("MOVIEGRAPH_MAX_CONCURRENT", 8, min_val=1)

# Local data
DATASET_PATH = Path(os.environ.get("MOVIEGRAPH_DATASET", "data/movies.json"))
RECOMMENDATIONS_DIR = Path(os.environ.get("MOVIEGRAPH_RECOMMENDATIONS_DIR", "recommendations"))
IMPORT_CHUNK_SIZE = _get_int_env("MOVIEGRAPH_IMPORT_CHUNK_SIZE", 500, min_val=1)

# Recommender defaults
DEFAULT_AMOUNT = 10
DEFAULT_MIN_RATING = 4.0  # "Liked" threshold for collaborative filtering
RUNTIME_PROXIMITY_MINUTES = 10  # Content-based candidate window (strict <)
DEFAULT_RUNTIME_MIN = 0
DEFAULT_RUNTIME_MAX = 300

# Insights defaults
TOP_IN_GENRE_LIMIT = 10
USER_TOP_LIMIT = 5
MOST_LIKED_GENRE_MIN_RATING = 3.0
SIMILAR_USERS_MAX_DIFF = 1.0
SIMILAR_USERS_LIMIT = 10

# Human-readable language names accepted by the CLI, mapped to the
# original_language codes stored on Movie nodes.
LANGUAGE_CODES = {
    "english": "en",
    "spanish": "es",
    "french": "fr",
    "japanese": "ja",
    "korean": "ko",
    "hindi": "hi",
    "german": "de",
    "italian": "it",
    "chinese": "zh",
}

# "Classic" era in the CLI expands to every decade before this one
CLASSIC_ERA_BEFORE = 1980
EARLIEST_DECADE = 1900
