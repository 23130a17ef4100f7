"""
Verification services: QR codec, scoring, collaborators and the pipeline.
"""
