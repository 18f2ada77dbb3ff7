"""DocSpace Engine — Config, errors, logging, request context, runtime."""
