"""Backend package: API, services, persistence and document renderers."""
