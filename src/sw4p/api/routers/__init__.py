"""Admin and webhook routers."""
