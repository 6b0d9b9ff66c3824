"""chatgate: OpenAI-compatible gateway in front of heterogeneous model providers."""

__version__ = "0.1.0"
