"""
Route modules for the API.

Each module exports a FastAPI APIRouter with endpoints
for a specific domain/feature.
"""

from api.routes import discovery
from api.routes import experiments
from api.routes import health
from api.routes import personalization
from api.routes import signals

__all__ = ["discovery", "experiments", "health", "personalization", "signals"]
