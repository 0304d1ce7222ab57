"""
Contracts Module

Explicit data types shared by every layer. Layers import from here and
never from each other's implementations.

DESIGN PRINCIPLES:
==================
1. Value types crossing a layer boundary are frozen dataclasses
2. Raw persisted records stay plain JSON mappings; typed views are built
   with tolerant `from_record()` factories
3. All timestamps are UTC
4. Errors are data as well as exceptions
"""
