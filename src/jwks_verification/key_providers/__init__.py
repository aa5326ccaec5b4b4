"""
Key source implementations for fetching published signing key sets.

This package contains implementations of the KeySource protocol.
"""

from .google import GoogleJWKSProvider

__all__ = ["GoogleJWKSProvider"]
