"""Pure domain core: checkpoints, ledger arithmetic, allocation and lifecycle rules."""
