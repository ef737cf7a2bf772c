"""jiraflow: drive Jira issues through their lifecycle from Slack."""

__version__ = "0.3.0"
