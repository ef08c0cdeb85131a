"""pi_finder: locate clinical-trial investigators near a postal code.

The package combines a geo-radius investigator search, an on-demand proxy to the
ClinicalTrials.gov registry, and the reconciliation logic that filters and
re-paginates results by trial phase, sponsor class, and recruitment status.
"""
