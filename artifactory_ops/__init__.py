"""Artifactory operations for continuous-delivery hosts."""

__version__ = '0.1.0'
__package_name__ = 'artifactory-ops'
__product_name__ = 'Artifactory Operations'
