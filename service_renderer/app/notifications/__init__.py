"""
Failure notifications for the Render Service.
"""

from .slack import FailureNotifier, SlackNotifier

__all__ = ["FailureNotifier", "SlackNotifier"]
