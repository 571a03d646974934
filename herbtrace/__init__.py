"""
herbtrace - batch compliance and provenance engine for Ayurvedic herb lots.

A batch moves through four stages (collection, processing, quality testing,
packaging/distribution). Each stage is admitted to a shared ledger only after
the relevant rule validator has accepted it:

- zones: harvest point inside an herb-approved cultivation zone
- harvest: season windows and the yearly sustainability quota
- quality: lab test parameters against herb standards, lab scope, integrity hash
- provenance: the per-batch record and its status machine
"""

__version__ = "0.1.0"
