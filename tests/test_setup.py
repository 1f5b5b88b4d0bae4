"""Test that the project setup is working correctly."""

import sportfun_market


def test_version() -> None:
    """Test that version is defined."""
    assert sportfun_market.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from sportfun_market import chain, market, metadata, storage
    from sportfun_market.market import snapshot

    # Just verify imports work
    assert chain is not None
    assert market is not None
    assert metadata is not None
    assert storage is not None
    assert snapshot.MarketSnapshotService is not None
