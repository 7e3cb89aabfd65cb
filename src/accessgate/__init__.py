"""Access entitlement engine for gated LMS content."""

__version__ = "0.1.0"
