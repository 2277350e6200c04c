"""
VM provisioning.

Modules:
- prerequisites: Tool and SSH key checks before anything runs
- terraform: terraform init/plan/apply/output/destroy
- ssh: Waiting for freshly booted VMs to accept SSH
"""
