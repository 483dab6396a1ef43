"""Basic tests to verify setup."""

import practice_ai


def test_version():
    """Test that version is defined."""
    assert hasattr(practice_ai, "__version__")
    assert practice_ai.__version__ == "0.1.0"


def test_import():
    """Test that package can be imported."""
    assert practice_ai is not None
    assert practice_ai.FallbackChain is not None
