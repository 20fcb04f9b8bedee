"""
Domain layer - persisted entities and the collaborator interfaces the
scheduling core depends on.
"""
