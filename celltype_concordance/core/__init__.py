"""Core stages of the concordance pipeline.

- ingest: 10x matrix and published annotation loading
- reconciliation: annotation identifier rewrite and label join
- qc: per-cell QC statistics and label-presence filter
- classification: reference-based label prediction
- relabel: coarse malignant/stromal labels
- concordance: contingency tables
"""
