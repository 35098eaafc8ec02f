"""Service layer — reconciliation, probes, artifacts and dispatch.

Services may import from domain, providers and infrastructure layers.
They must never import from commands or output.
"""
