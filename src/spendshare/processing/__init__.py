"""Pure computations over transactions and limits."""
