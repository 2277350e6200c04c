"""
k8s-libvirt: Kubernetes on libvirt/KVM virtual machines.

Provisions VMs with Terraform, bootstraps a kubeadm cluster on them with
Ansible, and validates the result with kubectl run through Ansible ad-hoc
commands on the control plane.

Main features:
- Terraform and Ansible project rendering from Jinja2 templates
- inventory.ini generation from Terraform outputs
- SSH readiness polling before cluster bootstrap
- Health checks, smoke tests and validation reports
- ansible-playbook syntax checks and ansible-lint integration
"""

__version__ = "0.3.0"
