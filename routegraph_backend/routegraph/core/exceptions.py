"""
Common exceptions for RouteGraph.
"""


class RouteGraphError(Exception):
    """Base exception for all RouteGraph errors."""
    pass


class InvalidGeometry(RouteGraphError):
    """Raised when a road geometry carries NaN/infinite or otherwise unusable coordinates."""
    pass


class InvalidInput(RouteGraphError):
    """Raised when a query start/end point is missing or malformed."""
    pass


class GraphInconsistency(RouteGraphError):
    """Raised when the graph being built references something that does not exist."""
    pass


class GraphNotReady(RouteGraphError):
    """Raised when a query arrives before a (non-empty) graph is available."""
    pass


class NoPathFound(RouteGraphError):
    """Raised when the search frontier is exhausted without reaching the target."""

    def __init__(self, source: int, target: int) -> None:
        super().__init__(f"No path found from node {source} to node {target}")
        self.source = source
        self.target = target


class RecomputeFailure(RouteGraphError):
    """Raised when a submission could not be materialized and was rolled back."""
    pass
