"""Domain layer — item, probe, var and host models.

This layer depends only on stdlib, pydantic and :mod:`convergectl.errors`.
It must never import from services, infrastructure, commands, or config.
"""
