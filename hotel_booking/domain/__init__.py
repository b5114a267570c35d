"""
Domain layer - hotel booking service.

Holds the entities, value objects and errors of the booking lifecycle.
Nothing here performs I/O.
"""
