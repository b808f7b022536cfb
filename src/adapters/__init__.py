"""Adaptadores de I/O: construcción del cliente httpx y persistencia JSON."""
