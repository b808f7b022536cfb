"""Modelos y entidades del dominio.

Por qué:
- Estructuras de datos puras y estrictas (Pydantic v2).
- El dominio no conoce httpx, la CLI ni el almacenamiento.
"""
