"""PNG decoding with a built-in inflate implementation, and small vector types."""

__version__ = "0.1.0"
__all__ = ["errors", "inflate", "png", "vector"]