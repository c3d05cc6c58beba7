"""Application services."""

from profilestub.application.services.simulated_api import SimulatedApi, generate_secret

__all__ = ["SimulatedApi", "generate_secret"]
