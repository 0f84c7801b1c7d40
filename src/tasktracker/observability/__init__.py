"""
tasktracker.observability

Logging helpers shared by every repository.
"""
