"""DAS tests package.

Houses unit/integration tests for:
- Reed–Solomon erasure coding
- Merkle commitments and the tree-node strategy
- allocation, complaints, reconstruction, mismatch proofs, verdicts
- end-to-end epochs over the in-memory ledger and share bus

This file ensures pytest package discovery is consistent.
"""
