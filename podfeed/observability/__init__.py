"""Logging and Prometheus metrics for podfeed."""
