"""
PVC autoscaler: grows Kubernetes PersistentVolumeClaims from per-pod disk usage probes.
"""

__version__ = "1.0.0"
