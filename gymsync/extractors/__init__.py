"""Page field extraction and address locality parsing."""
from gymsync.extractors.html_extractor import ExtractedFields, extract_fields
from gymsync.extractors.region import extract_region

__all__ = ["ExtractedFields", "extract_fields", "extract_region"]
