"""
Upload cache package.

- hashing.py: Content hashes used as cache keys
- store.py: JSON-document store of uploaded file records
- coordinator.py: Get-or-upload orchestration against the Gemini File API
"""
