"""FastAPI serving layer for venue check-in verification."""
