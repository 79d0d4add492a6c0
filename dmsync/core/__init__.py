"""DM Core

Domain entities, exceptions, collaborator interfaces and instance model helpers.
"""
