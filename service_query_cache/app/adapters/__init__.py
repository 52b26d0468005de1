"""Clients for services the query cache depends on."""
