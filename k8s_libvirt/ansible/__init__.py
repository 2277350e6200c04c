"""
Ansible execution.

Modules:
- output: Parsing of ad-hoc command output into per-host results
- runner: ansible / ansible-playbook invocations against inventory.ini
"""
