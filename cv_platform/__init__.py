"""Chat-driven portfolio-site editor: generation, validation, auto-repair and live preview."""

__version__ = "0.1.0"
