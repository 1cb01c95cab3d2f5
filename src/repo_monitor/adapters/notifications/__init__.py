"""Notification adapters."""

from repo_monitor.adapters.notifications.dispatcher import NotificationDispatcher
from repo_monitor.adapters.notifications.email_notifier import EmailNotifier
from repo_monitor.adapters.notifications.slack_notifier import SlackNotifier

__all__ = ["EmailNotifier", "NotificationDispatcher", "SlackNotifier"]
