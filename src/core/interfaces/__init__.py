"""Interfaces/abstracciones del Core.

Por qué:
- Define contratos (Protocol) que implementan los adapters concretos.
- Invierte dependencias: el Core depende de abstracciones.
"""
