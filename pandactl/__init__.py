"""Command types, rate limiting, TCP/UDP transport and model access for a 7-joint robot arm."""

__version__ = "0.1.0"

__all__ = ["control_types", "rate_limiting", "network", "model"]