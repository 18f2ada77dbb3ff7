"""DocSpace API — FastAPI application factory and routes."""
