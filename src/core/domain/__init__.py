"""Modelos y errores del dominio.

Por qué:
- Aquí viven las estructuras de datos (Pydantic v2) y la jerarquía de errores.
- El dominio no sabe nada de HTTP ni de la CLI: solo conceptos de Bitbucket.
"""
