"""HTTP client helpers for talking to a running PI Finder API."""

from .api import PiFinderClient, RemoteSearchBackend, should_post_trial_meta

__all__ = ["PiFinderClient", "RemoteSearchBackend", "should_post_trial_meta"]
