"""Fee structuring and installment engine."""
