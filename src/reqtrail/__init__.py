"""Request observability for a multi-tenant SaaS backend."""

__version__ = "0.1.0"
