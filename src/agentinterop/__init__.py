"""agentinterop: drive local agent processes over a framed stdio protocol."""

__version__ = "0.1.0"
