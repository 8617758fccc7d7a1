# backend/busdb/apps/directory/__init__.py
"""
Directory app

Institutions, guardians, students, drivers and vehicles, stored as JSON
documents and served through one scope-checked `DirectoryStore` per entity
type.
"""
