"""Multi-agent orchestration core for a business CRM."""

__version__ = "0.1.0"
