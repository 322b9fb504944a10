"""Exception types raised by the recommender and its graph store adapters."""


class RecommenderError(Exception):
    """Base class for all recommender failures."""


class InvalidInput(RecommenderError, ValueError):
    """Malformed request criteria, reported synchronously to the caller."""


class UpstreamUnavailable(RecommenderError):
    """The graph store could not answer a query (transport, HTTP or transient DB error)."""


class GraphQueryError(RecommenderError):
    """The graph store rejected a statement as invalid."""


class ConfigurationError(RecommenderError):
    """Required settings are missing or unusable."""
