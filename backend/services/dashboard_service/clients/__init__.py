"""Clients for systems outside the dashboard service."""
