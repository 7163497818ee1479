"""
Server actions for CampusFlow.

Every action validates its input, checks identifier formats, talks to MongoDB
and returns a plain result dict with at least ``success`` and ``message``.
Expected failures are returned, never raised.
"""
