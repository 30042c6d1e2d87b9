"""Promote code and content between the test, stage and prod tiers of a
content-management deployment."""

__version__ = "1.0.0"
