"""Servicios del Core: resolución de credenciales, auth, cookies y ejecución."""
