"""Send Substack articles and local PDFs to a Kindle as e-books."""

__version__ = "0.1.0"
