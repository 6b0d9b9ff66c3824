"""OpenAI-compatible HTTP surface (chat completions + model listing) over a provider registry."""

__all__ = []
