"""One-way sync of GitHub issues into Jira"""

__version__ = "1.0.0"
