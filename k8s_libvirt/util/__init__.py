"""
Utility functions and helpers.

This package contains reusable utilities for subprocess execution, file
operations, retries, progress output, template rendering and linting.

Modules:
- process: External command execution (terraform, ansible, ssh)
- templates: Jinja2 template loading with workspace overrides
- linting: ansible-lint integration
"""
