"""Vital-event document intelligence.

Extracts text from scanned certificates with Tesseract OCR and runs
structured, model-backed analysis (document analysis, fraud detection,
classification, validation) over the result for registry verification.
"""

__version__ = "0.1.0"
