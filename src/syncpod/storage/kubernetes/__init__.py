"""Kubernetes storage layer.

Every class here converts API and transport exceptions into
`~syncpod.exceptions.KubernetesError`.
"""
