"""
Product Authenticity Verification Service

Decrypts product QR codes, cross-checks them against registered product state,
folds in image-forensics, scan-anomaly and fraud-risk signals, and records an
auditable verdict for every scan.
"""

__version__ = "1.0.0"
__author__ = "Authenticity Verification Team"
