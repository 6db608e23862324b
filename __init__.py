"""
Excel Admin Upload Application

This package provides an admin endpoint for uploading Excel files into the
ingestion pipeline, answering browsers with HTML pages and API clients with JSON.

Key modules:
- main.py: FastAPI application, logging and router registration
- admin_routes.py: GET/POST /admin/upload
- upload_gate.py: Multipart decoding, single-file contract and size limits
- response_mode.py: HTML vs. structured response selection
- page_renderer.py: Inline HTML page template and fragments
- upload_handler.py: Pipeline hand-off and outcome rendering
- excel_file_process.py: Default workbook ingestion pipeline
- utils/result.py: Result pattern implementation for error handling
"""
