"""Service layer for links, submissions and document batches."""
