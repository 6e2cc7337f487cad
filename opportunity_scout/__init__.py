"""Opportunity Scout: discover, dedup and score job postings."""

__version__ = "1.0.0"
