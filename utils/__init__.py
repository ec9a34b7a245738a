"""Shared helpers: clock, cancellation, logging and the service client."""
