"""
Chat Bookkeeper - Source Package

Turns free-form chat messages ("lunch 250 cash") into categorized
income/expense entries for a personal ledger.

DESIGN PRINCIPLES:
1. Parse → Resolve → Draft → Commit → Reply, one message at a time
2. Validation errors are terminal, storage hiccups are retried
3. Never guess a category - an unknown subject is reported back
4. Every failure still tells the user what we understood
5. Storage collaborators are swappable
"""

__version__ = "1.0.0"
__author__ = "Chat Bookkeeper Team"
