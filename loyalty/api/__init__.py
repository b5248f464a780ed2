"""API blueprints for the loyalty service."""
