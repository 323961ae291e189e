"""
KarigarFlow - order ingestion for jewellery workshops.

Parses order sheets and PDFs, maps design codes to the master-design
registry, reconciles against stored orders and submits batches with an
offline queue.
"""

__version__ = "0.1.0"
