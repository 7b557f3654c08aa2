"""Family Portal: review workflow and notifications for a family community."""

__version__ = "1.0.0"
