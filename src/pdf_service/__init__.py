"""
Office-to-PDF Conversion Service package.

Exposes a FastAPI application (`pdf_service.webapi:app`) that converts
PowerPoint and Word uploads to PDF, plus a requests-based queue client and
a Streamlit front-end built on it.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
