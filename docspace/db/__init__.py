"""DocSpace DB — Models, engine factory and session helpers."""
