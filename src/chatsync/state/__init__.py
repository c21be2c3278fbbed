"""State/store layer.

This package is the single source of truth for how fetch responses, push
events and optimistic mutations are merged into one consistent in-memory view
of conversations, messages and users.
"""
