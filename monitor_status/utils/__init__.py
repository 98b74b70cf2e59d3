"""Concurrency, backpressure and correlation helpers."""
