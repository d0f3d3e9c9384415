"""Tool registry, executor and built-in tools."""
