"""Gateway services: discovery, reconciliation, routing and restore."""
