"""
Finora application-specific code.

This package contains the account and session layer:
- models: Account and subscriber documents
- repositories: MongoDB persistence with atomic token/session updates
- services: Token, session, email and notification services
- pipelines: Registration, login, recovery, email and newsletter flows
- routers: FastAPI endpoints
- config: Application settings

Uses generic infrastructure from the common/ package.
"""

from app.config import settings

__all__ = ["settings"]
