"""
Orchestration pipelines.

Each pipeline takes its collaborators as arguments and returns a Result.
"""
