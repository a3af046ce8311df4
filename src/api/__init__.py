"""
API module for FastAPI routes.

This module organizes all API endpoints by domain/feature.
Each route module defines a FastAPI APIRouter that can be
mounted on the main application.
"""

from api.routes import discovery, experiments, health, personalization, signals

__all__ = ["discovery", "experiments", "health", "personalization", "signals"]
