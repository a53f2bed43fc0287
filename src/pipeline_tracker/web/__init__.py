"""Flask application and blueprints."""
