"""API route definitions and exports."""
from api.routes import events, generations

__all__ = ["events", "generations"]
