"""Signal client building blocks: attachment crypto and CDN transfer, REST request models, envelope routing and CLI parsing."""

__version__ = "0.2.3"

__all__ = [
    "api_models",
    "attachment",
    "auth",
    "cli",
    "routing",
    "upload",
]