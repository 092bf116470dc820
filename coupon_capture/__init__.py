"""Coupon capture service: OCR, heuristic field extraction and persistence."""
