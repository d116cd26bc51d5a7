"""Shipped default catalog and regression fixtures."""
