"""
PDF Generator Service - HTML to PDF conversion with short-lived download links.

Renders submitted HTML with a shared headless Chromium (Playwright), stores
the resulting PDF for five minutes, and serves it back by id.
"""

__version__ = "0.1.0"
