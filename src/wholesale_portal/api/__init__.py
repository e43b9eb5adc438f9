"""API subpackage - FastAPI app, routers and dependencies."""
