"""
AI Core Module - turns sieved artifacts into decision records.

Key responsibilities:
- Batch prompt construction with untrusted-content markers
- Primary/fallback provider calls with a hard timeout
- Strict validation of the structured output
"""
