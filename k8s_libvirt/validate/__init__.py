"""
Cluster validation.

Modules:
- health: Connectivity, control plane, node, system pod and pod creation checks
- smoke: nginx deployment and DNS smoke tests
"""
