"""Application package for the Entrance Pathway e-learning API."""
