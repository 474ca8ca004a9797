"""
Excel Consolidator Application

This package provides an API that previews several uploaded Excel files,
checks that their column headers agree, and merges them into one workbook.

Key modules:
- main.py: FastAPI application with the /preview and /consolidate endpoints
- ingestion.py: Decoding of uploaded workbooks into a grid of cell text
- cell_format.py: Rendering of cells through their number formats
- header_validation.py: Header extraction and cross-file consistency checks
- preview.py: Per-file preview report and batch summary
- consolidation.py: Merge, natural sort and xlsx serialization
- utils/result.py: Result pattern implementation for error handling
"""
