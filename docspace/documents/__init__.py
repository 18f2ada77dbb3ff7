"""DocSpace Documents — Editor sessions, callbacks, conversion, tokens."""
