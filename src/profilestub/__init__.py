"""ProfileStub - an in-process stand-in for a marketing-database API.

Normalizes a loosely keyed description of databases, collections and
fields, and stores profile/subprofile records the way the real API
would return them.
"""

__version__ = "0.1.0"

from profilestub.application.services.simulated_api import SimulatedApi

__all__ = ["SimulatedApi", "__version__"]
