"""Data store package for pi_finder.

This package owns the SQLAlchemy schema for the investigator table and the read
helpers that implement the paged and unpaged geographic search queries.
"""
