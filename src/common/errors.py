"""Exception hierarchy for the peer RPC client."""
from __future__ import annotations


class PeerRpcError(Exception):
    """Base exception for all errors raised by this package."""


class ConfigurationError(PeerRpcError):
    """Raised when options or network presets are invalid."""


class DiscoveryError(PeerRpcError):
    """Raised when the peer discovery source cannot be reached or configured."""


class NetworkNotInitializedError(PeerRpcError):
    """Raised when the network is queried before ``init``."""


class NetworkAlreadyInitializedError(PeerRpcError):
    """Raised when ``init`` is called a second time."""


class PeerSelectionError(PeerRpcError):
    """Raised when no peer can be selected for a request."""


class NoCandidatePeerError(PeerSelectionError):
    """Discovery returned no peer advertising the required capability."""


class NoReachablePeerError(PeerSelectionError):
    """Every probed candidate was unreachable."""
