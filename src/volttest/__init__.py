"""
VoltTest server lifecycle - ephemeral application servers for load tests

Spawns short-lived HTTP server processes for an application under test,
waits for them to become request-ready, and guarantees they are torn down.
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
