"""HTTP surface for pi_finder (FastAPI routers and app factory)."""
