"""Sport.fun on-chain market snapshot builder."""

__version__ = "0.1.0"
