"""
Gemini integration.

- files.py: File API client (resumable upload and status checks)
- attachment.py: Request parts for inline or uploaded PDFs
"""
