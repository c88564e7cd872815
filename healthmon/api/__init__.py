"""HTTP query façade — FastAPI routers and app factory."""
