"""Route blueprints for the garage API."""
