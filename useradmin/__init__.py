"""Users admin: user, role and plugin access management for an admin panel."""

__version__ = "0.1.0"
