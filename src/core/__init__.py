"""Núcleo de ejecución de requests: dominio, interfaces, servicios y configuración."""
