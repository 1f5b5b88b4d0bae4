"""Base exception shared by the package's error families."""


class SportfunMarketError(Exception):
    """Base exception for sportfun_market errors."""
