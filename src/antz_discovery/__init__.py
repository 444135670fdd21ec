"""ANT+ receiver-side discovery, page decoding and device session tracking."""

__version__ = "0.4.0"
