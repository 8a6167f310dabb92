"""Application modules.

This package contains the feature modules for the Discompress backend:
- compression: Size-targeted video re-encoding and delivery
"""
