"""EduForge Agent - tool-calling agent engine for the EduForge platform.

Note: Import `app` directly from `eduforge_agent.main` to avoid circular imports.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
