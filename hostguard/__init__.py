"""hostguard — single-host health checks, alert lifecycle and image hardening."""

__version__ = "0.1.0"
