"""HTTP middleware for the dynalink service."""
