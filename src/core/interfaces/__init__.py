"""Interfaces/abstracciones del Core.

Por qué:
- Contratos estructurales (Protocol) que implementan los adaptadores.
- El core depende de estos contratos, nunca de un storage o transporte concreto.
"""
