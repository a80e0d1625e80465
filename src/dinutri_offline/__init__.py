"""DiNutri Offline - offline-first caching gateway for the DiNutri web app."""

__version__ = "0.1.0"
