"""Infrastructure layer — cache database, shell, templates, transport.

This layer depends on stdlib and third-party libs (SQLAlchemy, NetworkX,
Jinja2, httpx). It must never import from services, commands, or output.
"""
