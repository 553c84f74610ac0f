"""podfeed: debounced feed refreshes driven by Kubernetes pod IP changes."""

__version__ = "0.1.0"
