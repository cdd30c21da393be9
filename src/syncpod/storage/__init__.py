"""Storage layers for Kubernetes, SSH, and filesystem access."""
