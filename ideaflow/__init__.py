"""IdeaFlow backend: turn captured ideas into scheduled tasks."""
