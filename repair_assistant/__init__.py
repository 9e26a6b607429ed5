"""Repair Assistant - AI-assisted hardware fault diagnosis.

This package helps a repair technician turn a fault description (and optional
photos) into a structured repair plan generated by Gemini with Google Search
grounding. A personal archive of past repair cases can be imported from JSON or
Excel and is handed to the model as a knowledge base.

The assistant is built from a few small pieces:
- Record normalization: maps arbitrary spreadsheet/JSON columns to case records
- Prompt assembly: combines photos, description and case archive into a request
- Resilient invocation: retries transient service failures with backoff
- Text rendering: turns the model's Markdown subset into display blocks
"""

__version__ = "0.1.0"
