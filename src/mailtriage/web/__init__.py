"""HTTP shell for the mail triage service.

Provides a FastAPI application that owns the poll scheduler and exposes:
- Health/liveness endpoint
- Manual triage trigger
"""

from mailtriage.web.app import create_app

__all__ = ["create_app"]
