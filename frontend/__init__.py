"""HTTP client used by the admin tooling."""
