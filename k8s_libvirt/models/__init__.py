"""
Data models.

This package contains the dataclasses shared across provisioning, bootstrap
and validation.

Modules:
- cluster: Cluster configuration (node pools, kubeadm, SSH) and inventory
"""
