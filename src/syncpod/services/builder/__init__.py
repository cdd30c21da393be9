"""Construction of Kubernetes objects."""
