"""
SiteGate - Policy-gated access to sensitive site records

A FastAPI-based service that wraps a PostgREST backend with per-subject
rate limiting, retry with exponential backoff, and audited, masked
disclosure of contact and payment details.
"""

__version__ = "0.1.0"

from .main import app

__all__ = ["app"]
