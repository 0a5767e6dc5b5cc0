"""Labor cost resolution and time entry audit trail."""

__version__ = "1.0.0"
