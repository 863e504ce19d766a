"""caregate: role-aware route registry and table search for the healthcare admin console."""

__version__ = "1.0.0"
