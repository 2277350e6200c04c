"""
Validation reports.

Modules:
- validation: validation-report.txt and the JSON check log in reports/
"""

from k8s_libvirt.report.validation import generate_validation_report

__all__ = ["generate_validation_report"]
