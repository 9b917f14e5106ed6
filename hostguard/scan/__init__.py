from .scanner import ImageScanner, ScanSummary
