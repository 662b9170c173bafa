"""Durable lab registry."""
