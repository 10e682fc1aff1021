"""PDF documents: invoices, receipts and statements."""

from src.services.documents.pdf_renderer import DocumentRenderError, PdfRenderer

__all__ = ["DocumentRenderError", "PdfRenderer"]
