"""convergectl — declarative convergence for machines and small fleets."""

__version__ = "0.4.0"
