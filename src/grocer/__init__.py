"""grocer: order lifecycle and inventory engine for community grocery delivery."""

__version__ = "0.1.0"
